"""
Database connection and session management.
"""
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.exc import OperationalError, DBAPIError
from typing import Optional
import logging
import time

from capurl.core.database.models import Base

logger = logging.getLogger(__name__)


def normalize_database_url(url: str) -> str:
    """Convert postgres:// to postgresql:// (some hosts still hand out the old scheme)."""
    if url.startswith('postgres://'):
        return url.replace('postgres://', 'postgresql://', 1)
    return url


def init_db(database_url: str, max_retries: int = 3, retry_delay: float = 1.0, create_tables: bool = True) -> sessionmaker:
    """
    Create the engine and session factory with retry logic.

    Args:
        database_url: SQLAlchemy database URL
        max_retries: Number of connection attempts
        retry_delay: Seconds to wait between retries (multiplied by attempt number)
        create_tables: Create missing tables (convenient for SQLite; use Alembic in production)

    Returns:
        Session factory bound to the new engine

    Raises:
        RuntimeError: If connection fails after all retries
    """
    database_url = normalize_database_url(database_url)
    engine_kwargs = {}
    if database_url.startswith('sqlite'):
        # Sessions are opened from worker threads
        engine_kwargs['connect_args'] = {'check_same_thread': False}
        if ':memory:' in database_url:
            # One shared connection, otherwise every thread sees its own empty database
            engine_kwargs['poolclass'] = StaticPool

    last_error: Optional[Exception] = None
    for attempt in range(max_retries):
        try:
            engine: Engine = create_engine(
                database_url,
                pool_pre_ping=True,  # Verify connections before using
                echo=False,
                **engine_kwargs,
            )

            # Test connection
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))

            if create_tables:
                Base.metadata.create_all(engine)

            logger.info(f"Database initialized: {database_url.split('@')[1] if '@' in database_url else 'local'}")
            return sessionmaker(autocommit=False, autoflush=False, bind=engine)

        except (OperationalError, DBAPIError) as e:
            last_error = e
            logger.warning(f"Database connection attempt {attempt + 1}/{max_retries} failed: {e}")
            if attempt < max_retries - 1:
                time.sleep(retry_delay * (attempt + 1))

    logger.error(f"Database initialization failed after {max_retries} attempts")
    raise RuntimeError(f"Failed to connect to database: {last_error}") from last_error
