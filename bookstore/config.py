import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


@dataclass(frozen=True)
class Settings:
    """Runtime settings, read from environment variables."""
    database_url: str
    session_ttl_days: int
    rabbitmq_host: Optional[str]
    rabbitmq_exchange: str
    bcrypt_rounds: int
    log_level: str
    default_owner_email: str
    default_owner_password: str


def load_settings() -> Settings:
    return Settings(
        # Defaults to a local SQLite file so the service boots without Postgres.
        database_url=os.getenv("DATABASE_URL", "sqlite:///./bookstore.db"),
        session_ttl_days=int(os.getenv("SESSION_TTL_DAYS", "30")),
        # Event publishing is disabled unless a broker host is configured.
        rabbitmq_host=os.getenv("RABBITMQ_HOST") or None,
        rabbitmq_exchange=os.getenv("RABBITMQ_EXCHANGE", "events"),
        bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", "10")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        default_owner_email=os.getenv("DEFAULT_OWNER_EMAIL", "admin@local"),
        default_owner_password=os.getenv("DEFAULT_OWNER_PASSWORD", "default"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
