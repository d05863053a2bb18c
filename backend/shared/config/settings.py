"""
Application settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with defaults for development."""

    # Document store
    # "sql" persists documents through SQLAlchemy, "memory" keeps them in-process
    store_backend: str = "sql"
    database_url: str = "sqlite:///./menu_sync.db"

    # Redis (event emitter transport)
    redis_url: str = "redis://localhost:6380"
    redis_pool_max_connections: int = 20
    redis_socket_timeout: int = 5  # Socket timeout in seconds (connect and read/write)
    redis_publish_max_retries: int = 3
    redis_publish_retry_delay: float = 0.1

    # "redis" publishes cost notifications, "local" fans out to in-process listeners
    events_backend: str = "redis"

    # Cost propagation
    cost_epsilon: float = 0.001  # Currency units below which a cost change is noise
    money_decimals: int = 2
    cost_sync_queue_size: int = 100  # Bounded per-scope command queue
    change_feed_poll_interval: float = 1.0  # SQL store polling feed, seconds
    feed_resubscribe_max_attempts: int = 20

    # Call-site retry for transient store errors
    store_retry_max_attempts: int = 3
    store_retry_initial_delay: float = 0.2
    store_retry_max_delay: float = 5.0

    # Non-atomic bulk deletes are chunked to this size
    store_batch_limit: int = 500

    # Comma-separated "tenant:location" pairs started at application startup
    auto_start_scopes: str = ""

    # Server
    api_port: int = 8000
    allowed_origins: str = ""

    # Environment
    environment: str = "development"
    debug: bool = True

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    def validate_production_settings(self) -> list[str]:
        """
        Validate that the configuration is safe for production.
        Returns a list of validation errors. Empty list means all checks pass.
        """
        errors = []

        if self.store_backend not in ("sql", "memory"):
            errors.append(f"STORE_BACKEND must be 'sql' or 'memory', got '{self.store_backend}'")

        if self.events_backend not in ("redis", "local"):
            errors.append(f"EVENTS_BACKEND must be 'redis' or 'local', got '{self.events_backend}'")

        if self.environment == "production":
            if self.debug:
                errors.append("DEBUG must be False in production")

            # Documents kept in-process vanish on restart
            if self.store_backend == "memory":
                errors.append("STORE_BACKEND=memory is not allowed in production")

            if not self.allowed_origins:
                errors.append(
                    "ALLOWED_ORIGINS must be set in production (comma-separated list of allowed domains)"
                )

        return errors

    def parse_auto_start_scopes(self) -> list[tuple[str, str]]:
        """Parse AUTO_START_SCOPES into (tenant_id, location_id) pairs."""
        scopes = []
        for raw in self.auto_start_scopes.split(","):
            raw = raw.strip()
            if not raw:
                continue
            tenant_id, sep, location_id = raw.partition(":")
            if not sep or not tenant_id or not location_id:
                raise ValueError(f"Invalid AUTO_START_SCOPES entry: '{raw}' (expected tenant:location)")
            scopes.append((tenant_id.strip(), location_id.strip()))
        return scopes


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience exports
settings = get_settings()
