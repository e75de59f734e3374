# session_keeper/settings.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
from datetime import timedelta
import logging
from pathlib import Path

# Configure logging for settings module
logger = logging.getLogger(__name__)

# This settings.py file is at <project>/session_keeper/settings.py
PROJECT_ROOT = Path(__file__).parent.parent.resolve()
DOTENV_PATH = PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    app_name: str = "Session Keeper"
    debug_mode: bool = False
    log_level: str = "INFO"

    # "redis" for deployments, "memory" for local development and tests
    storage_backend: str = "redis"

    # Session lifecycle
    session_cookie_name: str = "session_id"
    session_duration_seconds: int = Field(default=3600, gt=0)
    session_regenerate_after_seconds: int = Field(default=1800, ge=0)
    session_secure_cookie: bool = False
    session_key_prefix: str = "session:"
    session_rotation_key_prefix: str = "session-rotation:"
    session_token_bytes: int = Field(default=32, ge=16)
    session_rotation_lease_seconds: int = Field(
        default=10,
        ge=0,
        description="How long a rotation claim is held. 0 disables the claim and accepts the double-rotation race.",
    )

    # Redis configuration
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None
    redis_ssl: bool = False
    redis_pool_size: int = 10
    redis_connect_timeout_seconds: float = 5.0
    redis_socket_timeout_seconds: float = 3.0

    model_config = SettingsConfigDict(
        env_file=DOTENV_PATH if DOTENV_PATH.exists() else None,
        extra="ignore",
        env_file_encoding='utf-8'
    )

    @property
    def session_duration(self) -> timedelta:
        return timedelta(seconds=self.session_duration_seconds)

    @property
    def session_regenerate_after(self) -> timedelta:
        return timedelta(seconds=self.session_regenerate_after_seconds)

    @property
    def session_rotation_lease(self) -> Optional[timedelta]:
        if self.session_rotation_lease_seconds <= 0:
            return None
        return timedelta(seconds=self.session_rotation_lease_seconds)

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug_mode else self.log_level.upper()


# Initialize settings instance
settings = Settings()

if settings.session_regenerate_after_seconds > settings.session_duration_seconds:
    logger.warning(
        f"SETTINGS: session_regenerate_after_seconds ({settings.session_regenerate_after_seconds}) "
        f"exceeds session_duration_seconds ({settings.session_duration_seconds}). "
        "Sessions will expire before they are ever rotated."
    )

logger.debug(
    f"SETTINGS: storage_backend='{settings.storage_backend}', "
    f"redis_host='{settings.redis_host}', "
    f"redis_password={'********' if settings.redis_password else 'None'}, "
    f"session_cookie_name='{settings.session_cookie_name}'"
)
