"""
Application settings

Values are read from the environment (or a local .env file) so that
commitment bounds, payment policy and batching limits can be tuned per
deployment without code changes.
"""
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Capital ledger settings"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    PROJECT_NAME: str = "Capital Ledger"
    VERSION: str = "1.0.0"
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000"]

    DATABASE_URL: str = "sqlite:///./capital_ledger.db"
    DB_CONNECT_ATTEMPTS: int = 5
    DB_CONNECT_BACKOFF_SECONDS: float = 0.5

    # Celery broker for the audit sink
    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_TASK_ALWAYS_EAGER: bool = False

    # Commitments
    MIN_COMMITMENT: int = 1_000
    MAX_COMMITMENT: int = 10_000_000_000

    # Capital calls and payments
    DEFAULT_DUE_DAYS: int = 30
    PAYMENT_GRACE_DAYS: int = 7
    ALLOW_OVERPAYMENTS: bool = False
    PAYMENT_MAX_RETRIES: int = 3

    # Batch aggregation
    ENABLE_BATCH_QUERIES: bool = True
    MAX_BATCH_SIZE: int = 50
    BATCH_FETCH_TIMEOUT_SECONDS: float = 10.0


settings = Settings()
