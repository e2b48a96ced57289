# =============================================================================
# Doris Webhook - Configuration
# =============================================================================
"""
Application configuration using Pydantic Settings.

Loads configuration from environment variables (or a local ``.env`` file).
The Doris BE address and password have no defaults: the service refuses to
start without them.
"""

from functools import lru_cache
from typing import Annotated, List

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_TABLE = "video_metrics"

_LOG_LEVELS = {
    "debug": "DEBUG",
    "info": "INFO",
    "warn": "WARNING",
    "warning": "WARNING",
    "error": "ERROR",
}


class Credentials(BaseModel):
    """
    Connection parameters for the Doris Stream Load endpoint.

    Attributes:
        be_http: Base URL of the BE HTTP port, scheme included
        database: Target database
        table: Target table
        user: Doris user
        password: Doris password (never logged in clear)
    """

    model_config = ConfigDict(frozen=True)

    be_http: str
    database: str
    table: str = DEFAULT_TABLE
    user: str
    password: str = Field(..., repr=False)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        doris_be_http: BE HTTP address used for Stream Load
        doris_database: Target database name
        doris_user: Doris user name
        doris_password: Doris password
        doris_table: Target table name
        log_level: Logging verbosity level
        log_format: ``json`` for JSON lines, anything else for console output
        debug: Log outgoing payloads and load metrics at debug level
        cors_allowed_origin: Allowed origins, ``*`` for any
        cors_allowed_methods: Allowed methods for cross-origin requests
        cors_allowed_headers: Allowed request headers
        cors_allow_credentials: Whether credentialed requests are allowed
        cors_max_age: Preflight cache duration in seconds
        host: Listener address
        port: Listener port
        shutdown_timeout: Seconds to wait for in-flight requests on shutdown
        keep_alive_timeout: Idle keep-alive timeout for inbound connections
        max_header_bytes: Largest accepted request head
    """

    # Doris Configuration
    doris_be_http: str
    doris_password: str
    doris_database: str = "video"
    doris_user: str = "devops"
    doris_table: str = DEFAULT_TABLE

    # Logging Configuration
    log_level: str = "INFO"
    log_format: str = "text"
    debug: bool = False

    # CORS Configuration
    cors_allowed_origin: Annotated[List[str], NoDecode] = ["*"]
    cors_allowed_methods: Annotated[List[str], NoDecode] = ["GET", "POST", "OPTIONS"]
    cors_allowed_headers: Annotated[List[str], NoDecode] = ["Content-Type", "Authorization"]
    cors_allow_credentials: bool = False
    cors_max_age: int = 3600

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 8080
    shutdown_timeout: float = 5.0
    keep_alive_timeout: int = 120
    max_header_bytes: int = 1 << 20

    # Pydantic Settings Configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_ignore_empty=True,
        extra="ignore",
    )

    @field_validator("doris_be_http")
    @classmethod
    def ensure_scheme(cls, v: str) -> str:
        """Prefix the BE address with ``http://`` when no scheme is given."""
        v = v.strip()
        if not v:
            raise ValueError("DORIS_BE_HTTP must be set")
        if not v.startswith(("http://", "https://")):
            v = "http://" + v
        return v.rstrip("/")

    @field_validator("doris_password")
    @classmethod
    def require_password(cls, v: str) -> str:
        if not v:
            raise ValueError("DORIS_PASSWORD must be set")
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return _LOG_LEVELS.get(v.strip().lower(), "INFO")

    @field_validator(
        "cors_allowed_origin",
        "cors_allowed_methods",
        "cors_allowed_headers",
        mode="before",
    )
    @classmethod
    def split_csv(cls, v):
        """Accept comma-separated strings for list settings."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @property
    def json_logs(self) -> bool:
        return self.log_format.strip().lower() == "json"

    def credentials(self) -> Credentials:
        """Build the immutable Stream Load credentials."""
        return Credentials(
            be_http=self.doris_be_http,
            database=self.doris_database,
            table=self.doris_table,
            user=self.doris_user,
            password=self.doris_password,
        )


def mask_password(password: str) -> str:
    """
    Mask a password for logging.

    Keeps the first and last two characters; short passwords are
    fully masked.
    """
    if len(password) <= 4:
        return "****"
    return password[:2] + "****" + password[-2:]


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Only the process entry point uses this; the application factory
    receives its settings explicitly.

    Returns:
        Settings: Application configuration instance
    """
    return Settings()
