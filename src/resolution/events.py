"""Operator-visible warning events."""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List

from resolution.errors import ErrorKind


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WarningEvent:
    """A transient, dismissable notification for the operator."""
    message: str
    kind: ErrorKind = ErrorKind.SCOPE_VIOLATION
    dismissable: bool = True
    created_at: float = field(default_factory=time.time)


WarningListener = Callable[[WarningEvent], None]


class NotificationSink:
    """
    Collects warning events and fans them out to listeners.

    Rendering is left to the host (toast, snackbar, terminal); the sink only
    records and forwards.
    """

    def __init__(self):
        self.events: List[WarningEvent] = []
        self._listeners: List[WarningListener] = []

    def subscribe(self, listener: WarningListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: WarningEvent) -> None:
        logger.warning(f"Operator warning: {event.message}")
        self.events.append(event)
        for listener in list(self._listeners):
            listener(event)

    def dismiss(self, event: WarningEvent) -> None:
        if event in self.events:
            self.events.remove(event)

    def clear(self) -> None:
        self.events.clear()
