"""Centralized application configuration using Pydantic settings."""
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven configuration shared by the rooms and bookings services."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    database_url: str = Field(
        default="sqlite:///./reservations.db",
        description="SQLAlchemy database URL. Defaults to local SQLite for development.",
    )
    run_db_migrations: bool = Field(
        default=False,
        description="Whether this service should create/update database tables on startup.",
    )
    jwt_secret: str = Field(default="super-secret", description="JWT signing secret")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_expire_minutes: int = Field(default=60, description="Token lifetime in minutes")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], description="Allowed CORS origins")
    default_rate_limit: str = Field(default="30/minute", description="Global rate limiting rule")
    rate_limiting_enabled: bool = Field(default=True, description="Toggle to disable SlowAPI limits (useful in tests)")
    room_cache_ttl: int = Field(default=60, description="TTL (s) for cached room listings")
    room_status_ttl: int = Field(
        default=10,
        gt=0,
        description="TTL (s) for cached occupancy status; bookings made elsewhere show up after at most this long",
    )
    metrics_enabled: bool = Field(default=True, description="Expose Prometheus metrics on /metrics")
    log_dir: Optional[str] = Field(default=None, description="Directory for access and audit logs; defaults to ./logs beside the code")

    lock_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="How long a booking write waits for its (room, date) critical section before giving up",
    )
    notification_backend: str = Field(default="log", description="Booking event delivery: 'log' or 'rabbitmq'")
    rabbitmq_host: str = Field(default="rabbitmq", description="RabbitMQ host for booking events")
    rabbitmq_queue: str = Field(default="bookings", description="Durable queue receiving booking events")
    payment_reference_prefix: str = Field(default="mrb", description="Prefix of generated payment reference codes")
    default_operating_start: str = Field(default="09:00", pattern=r"^\d{2}:\d{2}$", description="Opening time used when a room omits one")
    default_operating_end: str = Field(default="18:00", pattern=r"^\d{2}:\d{2}$", description="Closing time used when a room omits one")

    rooms_service_port: int = 8002
    bookings_service_port: int = 8003


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of the Settings object."""

    return Settings()


def reset_settings_cache() -> None:
    """Clear the cached Settings instance (useful for tests)."""

    get_settings.cache_clear()
