import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from chorus.services.errors import ConfigurationError

load_dotenv()


class Settings(BaseModel):
    # Backend (storage / database) Configuration
    backend_url: str = Field(default="http://localhost:54321", alias="CHORUS_BACKEND_URL")
    backend_api_key: str = Field(default="", alias="CHORUS_BACKEND_API_KEY")
    backend_timeout: float = Field(default=30.0, alias="CHORUS_BACKEND_TIMEOUT")

    # Request Queue Configuration
    queue_max_concurrent: int = Field(default=10, alias="CHORUS_QUEUE_MAX_CONCURRENT")
    queue_batch_delay_ms: int = Field(default=50, alias="CHORUS_QUEUE_BATCH_DELAY_MS")
    queue_max_batch_size: int = Field(default=20, alias="CHORUS_QUEUE_MAX_BATCH_SIZE")

    # Client Pool Configuration
    pool_max_size: int = Field(default=50, alias="CHORUS_POOL_MAX_SIZE")
    pool_client_ttl_minutes: int = Field(default=30, alias="CHORUS_POOL_CLIENT_TTL")
    pool_cleanup_interval_minutes: int = Field(
        default=5, alias="CHORUS_POOL_CLEANUP_INTERVAL"
    )
    pool_expiry_margin_seconds: int = Field(
        default=300, alias="CHORUS_POOL_EXPIRY_MARGIN"
    )

    # Retry Configuration
    retry_max_retries: int = Field(default=3, alias="CHORUS_RETRY_MAX_RETRIES")
    retry_initial_delay_ms: int = Field(default=500, alias="CHORUS_RETRY_INITIAL_DELAY_MS")
    retry_max_delay_ms: int = Field(default=10000, alias="CHORUS_RETRY_MAX_DELAY_MS")
    retry_backoff_multiplier: float = Field(
        default=2.0, alias="CHORUS_RETRY_BACKOFF_MULTIPLIER"
    )

    # Server Configuration
    host: str = Field(default="127.0.0.1", alias="CHORUS_HOST")
    port: int = Field(default=8000, alias="CHORUS_PORT")
    log_level: str = Field(default="INFO", alias="CHORUS_LOG_LEVEL")
    debug: bool = Field(default=False, alias="CHORUS_DEBUG")


def load_settings() -> Settings:
    """Build settings from the current process environment."""
    return Settings(**os.environ)


def validate_required(settings: Settings, names: list[str]) -> None:
    """Raise ConfigurationError naming every required setting that is empty."""
    missing = [name for name in names if getattr(settings, name, None) in (None, "")]
    if missing:
        raise ConfigurationError(
            f"Missing required settings: {', '.join(missing)}"
        )


global_settings = load_settings()
