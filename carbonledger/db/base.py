"""
Engine and session management for the CarbonLedger database.

The engine and session factory are process-wide singletons built from
``CarbonLedgerConfig.database_url``. SQLite (the default backend) is opened
with foreign keys enforced so that the ``ON DELETE`` rules on the models
hold; other backends get a pre-pinged connection pool.
"""

import logging
import os
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from carbonledger.config import get_config

logger = logging.getLogger(__name__)

Base = declarative_base()

_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _is_sqlite_memory(url: str) -> bool:
    return _is_sqlite(url) and make_url(url).database in (None, "", ":memory:")


def _enable_sqlite_foreign_keys(dbapi_conn, connection_record) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_database_url() -> str:
    """Configured database URL; the parent directory of a SQLite file is created."""
    url = get_config().database_url
    if _is_sqlite(url):
        database = make_url(url).database
        if database and database != ":memory:":
            directory = os.path.dirname(os.path.expanduser(database))
            if directory:
                os.makedirs(directory, exist_ok=True)
    return url


def get_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """Return the shared engine, creating it on first use."""
    global _engine

    if _engine is not None:
        return _engine

    url = database_url or get_database_url()
    if _is_sqlite(url):
        options = {"connect_args": {"check_same_thread": False}}
        if _is_sqlite_memory(url):
            # In-memory databases exist per connection; share a single one
            options["poolclass"] = StaticPool
        _engine = create_engine(url, echo=echo, **options)
        event.listen(_engine, "connect", _enable_sqlite_foreign_keys)
    else:
        _engine = create_engine(url, echo=echo, pool_pre_ping=True, pool_recycle=3600)

    logger.info("Database engine created for %s", make_url(url).render_as_string(hide_password=True))
    return _engine


def get_session_factory(engine: Optional[Engine] = None) -> sessionmaker:
    """Return the shared session factory.

    Sessions keep loaded attributes after commit (``expire_on_commit=False``)
    so route handlers can serialise objects once the transaction is closed.
    """
    global _SessionLocal

    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            bind=engine or get_engine(),
            autoflush=False,
            expire_on_commit=False,
        )
    return _SessionLocal


@contextmanager
def get_session(engine: Optional[Engine] = None) -> Generator[Session, None, None]:
    """Transactional session scope: commit on success, roll back on error."""
    session = get_session_factory(engine)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Optional[Engine] = None, drop_all: bool = False) -> None:
    """Create every table, optionally dropping the existing schema first."""
    from carbonledger.db import models  # noqa: F401  (registers the tables)

    bind = engine or get_engine()
    if drop_all:
        Base.metadata.drop_all(bind=bind)
        logger.warning("Dropped all CarbonLedger tables")
    Base.metadata.create_all(bind=bind)
    logger.info("Database initialised with %d tables", len(Base.metadata.tables))


def reset_engine() -> None:
    """Dispose of the shared engine and forget the session factory."""
    global _engine, _SessionLocal

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None
