"""Application layer for field-geo: settings and command-line interface."""

__version__ = "0.1.0"
