import logging
import time

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

Base = declarative_base()


def build_engine(database_url: str):
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        # in-memory databases only exist on a single connection
        if ":memory:" in database_url or database_url == "sqlite://":
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)
    return create_engine(database_url, pool_pre_ping=True)


def build_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def create_tables(engine, max_retries: int = 10, wait_seconds: float = 3):
    """Create all tables, retrying while the database container is still starting."""
    # Import so every model is registered on Base.metadata
    from sanatan_store.domain import models  # noqa: F401

    for attempt in range(max_retries):
        try:
            logger.info("🔄 Attempting DB connection (%s/%s)...", attempt + 1, max_retries)
            Base.metadata.create_all(bind=engine)
            logger.info("✅ DB Connected and Tables Created.")
            return
        except OperationalError:
            logger.warning("⚠️ DB not ready yet. Waiting %ss...", wait_seconds)
            time.sleep(wait_seconds)
    raise RuntimeError(f"Could not connect to the database after {max_retries} attempts")
