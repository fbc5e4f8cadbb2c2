"""Configuration management for field-geo."""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GeoServiceConfig(BaseSettings):
    """Geography lookup service settings."""

    model_config = SettingsConfigDict(env_prefix="GEO_", env_file=".env", extra="ignore")

    base_url: str = Field("http://localhost:8000/API")
    counties_path: str = Field("get_counties.php")
    constituencies_path: str = Field("get_constituencies.php")
    wards_path: str = Field("get_wards.php")
    stations_path: str = Field("get_polling_stations_for_roles.php")
    capacity_path: Optional[str] = Field(None)
    timeout_ms: int = Field(12000)
    auth_token: Optional[str] = Field(None)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v):
        """Validate lookup service URL format."""
        if not v or not v.startswith(("http://", "https://")):
            raise ValueError("GEO_BASE_URL must be an http(s) URL")
        return v.rstrip("/")

    @field_validator("timeout_ms")
    @classmethod
    def validate_timeout(cls, v):
        if v <= 0:
            raise ValueError("GEO_TIMEOUT_MS must be positive")
        return v

    def url_for(self, path: str) -> str:
        """Join an endpoint path onto the base URL."""
        return f"{self.base_url}/{path.lstrip('/')}"


class ScopeConfig(BaseSettings):
    """Jurisdiction and staffing settings."""

    model_config = SettingsConfigDict(env_prefix="SCOPE_", env_file=".env", extra="ignore")

    permission_module: str = Field("agent")
    default_required_agents: int = Field(3)

    @property
    def county_permission(self) -> str:
        return f"{self.permission_module}.manage.county"


class AppConfig(BaseSettings):
    """Application configuration settings."""

    model_config = SettingsConfigDict(env_prefix="APP_", env_file=".env", extra="ignore")

    name: str = Field("field-geo")
    version: str = Field("0.1.0")
    log_level: str = Field("INFO")
    debug: bool = Field(False)


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    geo: GeoServiceConfig = Field(default_factory=GeoServiceConfig)
    scope: ScopeConfig = Field(default_factory=ScopeConfig)
    app: AppConfig = Field(default_factory=AppConfig)

    @classmethod
    def load(cls) -> "Settings":
        """Load settings from environment."""
        return cls()
