"""
Database engine and session factory
"""
import logging
import time

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from capital_ledger.core.config import settings
from capital_ledger.core.exceptions import StoreError

_log = logging.getLogger(__name__)

engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """FastAPI dependency yielding a session per request"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def wait_for_database(
    bind: Engine = engine,
    attempts: int = settings.DB_CONNECT_ATTEMPTS,
    backoff: float = settings.DB_CONNECT_BACKOFF_SECONDS,
) -> None:
    """
    Block until the store accepts connections.

    Retries with exponential backoff, then gives up with StoreError. This is
    the only retry loop in the ledger; business operations never retry on
    connection failures.
    """
    delay = backoff
    for attempt in range(1, attempts + 1):
        try:
            with bind.connect() as conn:
                conn.execute(text("SELECT 1"))
            return
        except OperationalError as e:
            _log.warning(f"Database not reachable (attempt {attempt}/{attempts}): {e}")
            if attempt == attempts:
                raise StoreError("Database unavailable") from e
            time.sleep(delay)
            delay *= 2


def init_db(bind: Engine = engine) -> None:
    """Create every ledger table that does not exist yet"""
    from capital_ledger.db.base import Base
    import capital_ledger.models  # noqa: F401  registers the mappers

    Base.metadata.create_all(bind=bind)
