"""
Engine and session management.

Every reconciliation operation runs inside ``session_scope``: one transaction
that commits on success and rolls back on any exception, so a failed run
leaves no partial match records behind.
"""

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from invoice_reconciliation.config.app_config import ReconciliationConfig
from invoice_reconciliation.models import ConfigurationError
from .schema import Base

import logging
logger = logging.getLogger(__name__)


def create_db_engine(database_url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """
    Create a SQLAlchemy engine for the configured database.

    Args:
        database_url: Database URL. If None, uses DATABASE_URL from configuration.
        echo: Whether to log SQL statements. If None, uses SQL_ECHO.

    Returns:
        Configured Engine
    """
    url = database_url or ReconciliationConfig.DATABASE_URL
    if not url:
        raise ConfigurationError("DATABASE_URL is not configured")
    if echo is None:
        echo = ReconciliationConfig.SQL_ECHO

    kwargs = {'echo': echo, 'future': True}
    if url in ('sqlite://', 'sqlite:///:memory:'):
        # One shared connection, otherwise every session sees an empty database
        kwargs['poolclass'] = StaticPool
        kwargs['connect_args'] = {'check_same_thread': False}
    elif url.startswith('sqlite'):
        kwargs['connect_args'] = {'check_same_thread': False}
    else:
        kwargs['pool_pre_ping'] = True

    engine = create_engine(url, **kwargs)
    logger.info(f"Database engine created for {engine.url.render_as_string(hide_password=True)}")
    return engine


def init_db(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(engine)
    logger.info("Database schema initialized")


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False, future=True)


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """
    Provide a transactional unit of work.

    Commits when the block exits normally; rolls back and re-raises on any
    exception.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("Unit of work rolled back", exc_info=True)
        raise
    finally:
        session.close()
