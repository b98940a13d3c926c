"""
Engine, session factory and the transaction scope every command runs in.

PostgreSQL is the production database: READ COMMITTED, with session rows
read through ``SELECT ... FOR UPDATE``.  SQLite is accepted for tests and
local runs; it ignores row locks, and the ``version`` column on sessions
still catches lost updates there.

``session_scope()`` is all-or-nothing.  The slot counter change and the
session status change that caused it are always made inside one scope, so
they commit or roll back together.
"""

import atexit
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from trialflow_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

_NOT_INITIALIZED = "Database engine not initialized; call init_engine_from_url() first"


def _engine_options(
    database_url: str,
    pool_size: int,
    max_overflow: int,
    pool_pre_ping: bool,
    pool_recycle: int,
) -> dict[str, Any]:
    if database_url.startswith("sqlite"):
        # In-memory databases live as long as their connection, so share one
        return {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
    return {
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_pre_ping": pool_pre_ping,
        "pool_recycle": pool_recycle,
        "isolation_level": "READ COMMITTED",
    }


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create the process-wide engine and its session factory.

    Pool arguments apply to server databases only.  Sessions from the
    factory keep attribute values after commit, so committed DTOs can be
    built outside the scope.
    """
    global _engine, _SessionFactory

    options = _engine_options(database_url, pool_size, max_overflow, pool_pre_ping, pool_recycle)
    _engine = create_engine(database_url, echo=echo, **options)
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "echo": echo, "pooled": "poolclass" not in options},
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    if _SessionFactory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _SessionFactory


@contextmanager
def session_scope(factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    """
    Run a block in one transaction.

    Commits when the block exits normally; rolls back and re-raises when it
    raises.  The session is closed either way.

        with session_scope(factory) as session:
            SessionLifecycleEngine(session, clock).accept(session_id, owner)
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.debug("transaction_rolled_back")
        raise
    finally:
        session.close()


def _metadata():
    # Importing the models registers every table on Base.metadata
    import trialflow_kernel.models  # noqa: F401
    from trialflow_kernel.db.base import Base

    return Base.metadata


def create_tables(engine: Engine | None = None) -> None:
    metadata = _metadata()
    metadata.create_all(engine or get_engine())
    logger.info("tables_created", extra={"table_count": len(metadata.tables)})


def drop_tables(engine: Engine | None = None) -> None:
    """Drop every trialflow table.  Tests and local resets only."""
    _metadata().drop_all(engine or get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


atexit.register(reset_engine)
