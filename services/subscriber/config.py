"""Configuration management for the Subscriber node using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Get project root (two levels up from services/subscriber/config.py)
_PROJECT_ROOT = Path(__file__).parent.parent.parent
_ROOT_ENV_FILE = _PROJECT_ROOT / ".env"
# Service-specific .env (one level up from config.py)
_SERVICE_DIR = Path(__file__).parent
_SERVICE_ENV_FILE = _SERVICE_DIR / ".env"

# Build list of env files: root first, then service-specific
# (service overrides root)
_env_files = []
if _ROOT_ENV_FILE.exists():
    _env_files.append(str(_ROOT_ENV_FILE))
if _SERVICE_ENV_FILE.exists():
    _env_files.append(str(_SERVICE_ENV_FILE))


def split_csv(value: str | None) -> tuple[str, ...]:
    """Split a comma-separated setting into trimmed, non-empty entries."""
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def parse_event_types(value: str | None) -> tuple[str, ...]:
    """Parse the preset event types into their canonical (upper-case) form.

    Order and duplicates are preserved; the broker decides on uniqueness.
    """
    return tuple(item.upper() for item in split_csv(value))


class Settings(BaseSettings):
    """Node settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=_env_files if _env_files else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Node identity
    client_system_name: str = "subscriber"
    server_address: str = "127.0.0.1"
    server_port: int = Field(default=8869, ge=1, le=65535)

    # Service registry
    service_registry_address: str = "127.0.0.1"
    service_registry_port: int = Field(default=8443, ge=1, le=65535)

    # Security
    server_ssl_enabled: bool = True
    token_security_filter_enabled: bool = True
    server_ssl_key_store: str = "certificates/subscriber.p12"
    server_ssl_key_store_password: str = "123456"
    server_ssl_key_store_type: str = "PKCS12"

    # TLS material for outbound calls (PEM files)
    http_client_cert_file: str | None = None
    http_client_key_file: str | None = None
    http_ca_file: str | None = None
    http_timeout_seconds: float = 30.0

    # Header a TLS-terminating proxy fills with the caller certificate CN
    client_cert_cn_header: str = "X-SSL-Client-CN"

    # Event subscriptions
    preset_notification_uris: str = ""
    preset_events: str = ""

    # Application Configuration
    app_name: str = "Mesh Subscriber Node"
    debug: bool = False

    @property
    def event_types(self) -> tuple[str, ...]:
        """Configured event types in canonical form."""
        return parse_event_types(self.preset_events)

    @property
    def notification_uris(self) -> tuple[str, ...]:
        """Configured notification URIs."""
        return split_csv(self.preset_notification_uris)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
