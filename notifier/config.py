"""Environment configuration for the notification pipeline."""

import os
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


def _float_list(raw: str) -> list[float]:
    return [float(part) for part in raw.split(",") if part.strip()]


class Settings:
    """Pipeline settings loaded from environment variables."""

    def __init__(self) -> None:
        self.DATABASE_URL: str = os.getenv(
            "DATABASE_URL", "sqlite+aiosqlite:///./notifier.db"
        )

        # Persisted retry policy
        self.NOTIFY_MAX_RETRIES: int = int(os.getenv("NOTIFY_MAX_RETRIES", "5"))
        self.NOTIFY_BACKOFF_MINUTES: list[float] = _float_list(
            os.getenv("NOTIFY_BACKOFF_MINUTES", "5,15,30,60,120")
        )

        # Polling loops
        self.DISPATCHER_POLL_INTERVAL_SECONDS: float = float(
            os.getenv("DISPATCHER_POLL_INTERVAL_SECONDS", "60")
        )
        self.SCHEDULER_TICK_INTERVAL_SECONDS: float = float(
            os.getenv("SCHEDULER_TICK_INTERVAL_SECONDS", "60")
        )
        self.SCHEDULER_TIMEZONE: str = os.getenv("SCHEDULER_TIMEZONE", "UTC")

        # Batcher and in-memory retry queue
        self.DISPATCH_BATCH_SIZE: int = int(os.getenv("DISPATCH_BATCH_SIZE", "5"))
        self.DISPATCH_BATCH_DELAY_SECONDS: float = float(
            os.getenv("DISPATCH_BATCH_DELAY_SECONDS", "1.0")
        )
        self.DISPATCH_RETRY_DELAY_SECONDS: float = float(
            os.getenv("DISPATCH_RETRY_DELAY_SECONDS", "5.0")
        )
        self.DISPATCH_MAX_RETRIES: int = int(os.getenv("DISPATCH_MAX_RETRIES", "3"))

        # Read cache in front of the notification store
        self.CACHE_BACKEND: str = os.getenv("CACHE_BACKEND", "memory").lower()
        self.CACHE_TTL_SECONDS: int = int(os.getenv("CACHE_TTL_SECONDS", "300"))
        self.REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

        self.NOTIFICATION_RETENTION_DAYS: int = int(
            os.getenv("NOTIFICATION_RETENTION_DAYS", "30")
        )
        self.DISCORD_WEBHOOK_TIMEOUT_SECONDS: float = float(
            os.getenv("DISCORD_WEBHOOK_TIMEOUT_SECONDS", "10")
        )
        self.EVENT_QUEUE_SIZE: int = int(os.getenv("EVENT_QUEUE_SIZE", "1000"))

    def validate(self) -> None:
        """Validate that settings are usable."""
        if not self.DATABASE_URL:
            raise ValueError("DATABASE_URL environment variable is required")
        if self.NOTIFY_MAX_RETRIES < 0:
            raise ValueError("NOTIFY_MAX_RETRIES must be >= 0")
        if not self.NOTIFY_BACKOFF_MINUTES:
            raise ValueError("NOTIFY_BACKOFF_MINUTES must list at least one delay")
        if self.DISPATCH_BATCH_SIZE < 1:
            raise ValueError("DISPATCH_BATCH_SIZE must be >= 1")
        if self.DISPATCH_MAX_RETRIES < 0:
            raise ValueError("DISPATCH_MAX_RETRIES must be >= 0")
        if self.CACHE_BACKEND not in ("memory", "redis", "none"):
            raise ValueError(
                f"CACHE_BACKEND must be memory, redis or none, got {self.CACHE_BACKEND!r}"
            )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    return settings
