# backend/labprovider/config.py
import os
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


def _get_version() -> str:
    """Get version from APP_VERSION env var, VERSION file, or fallback to 'dev'."""
    if (version := os.environ.get("APP_VERSION")) and version != "dev":
        return version

    version_file = os.path.join(os.path.dirname(os.path.dirname(__file__)), "VERSION")
    try:
        with open(version_file) as f:
            if version := f.read().strip():
                return version
    except (FileNotFoundError, IOError):
        pass

    return "dev"


class Settings(BaseSettings):
    # Application
    app_name: str = "ESXi Lab Provider"
    app_version: str = _get_version()
    log_level: str = "INFO"

    # ESXi / vCenter connection (secrets come from the environment only)
    esxi_url: str = ""
    esxi_username: str = ""
    esxi_password: str = ""
    esxi_insecure: bool = False

    # Feature configuration (calendar, user mappings, WireGuard)
    feature_config_path: str = "data/user_config.yaml"

    # SMTP
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_from: str = ""
    smtp_timeout: float = 30.0
    # When set, every email goes to this address instead of the booker
    test_email_only: Optional[str] = None

    # OPNsense API credentials override the feature config values when set
    opnsense_url: Optional[str] = None
    opnsense_api_key: Optional[str] = None
    opnsense_api_secret: Optional[str] = None
    http_timeout: float = 30.0

    # Booking store
    database_url: str = "sqlite:///data/labprovider.db"

    class Config:
        env_file = ".env"

    def validate_esxi(self) -> None:
        """Ensure the hypervisor connection settings are present."""
        if not self.esxi_url:
            raise ConfigurationError("ESXI_URL is required")
        if not self.esxi_username:
            raise ConfigurationError("ESXI_USERNAME is required")
        if not self.esxi_password:
            raise ConfigurationError("ESXI_PASSWORD is required")

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_username and self.smtp_password)


@lru_cache
def get_settings() -> Settings:
    return Settings()
