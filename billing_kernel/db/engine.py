"""
Module: billing_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and transactional scope utilities.  Single point of database connection
    configuration for the engine.
Architecture position: Kernel > DB.  May import from db/base.py.  MUST NOT
    import from services/, selectors/ or domain/ (create_tables imports
    models/ lazily so Base.metadata is complete).

Invariants enforced:
    - PostgreSQL runs READ COMMITTED with explicit row locks
      (SELECT ... FOR UPDATE) where per-invoice serialization is needed.
    - SQLite (local runs and tests) starts every transaction with
      BEGIN IMMEDIATE so writers serialize the same way, and so that
      SAVEPOINTs behave; a busy timeout makes waiters block instead of fail.
    - session_scope() commits on success and rolls back on any exception.

Failure modes:
    - RuntimeError if get_engine/get_session_factory called before
      init_engine_from_url().
    - sqlalchemy.exc.OperationalError when the database is unreachable or a
      lock wait exceeds the backend timeout; propagated to the caller.
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from billing_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def _install_sqlite_transaction_hooks(engine: Engine) -> None:
    """Let SQLAlchemy own transaction start on pysqlite, using BEGIN IMMEDIATE."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    sqlite_busy_timeout: int = 30,
) -> Engine:
    """
    Build an Engine without touching module state.

    In-memory SQLite URLs share a single connection (StaticPool) so every
    session sees the same database.
    """
    if _is_sqlite(database_url):
        kwargs: dict = {
            "echo": echo,
            "connect_args": {
                "check_same_thread": False,
                "timeout": sqlite_busy_timeout,
            },
        }
        if ":memory:" in database_url or database_url.rstrip("/") in ("sqlite:", "sqlite+pysqlite:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, **kwargs)
        _install_sqlite_transaction_hooks(engine)
        return engine

    return create_engine(
        database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(database_url: str, echo: bool = False, **engine_kwargs) -> Engine:
    """
    Initialize the module-level engine and session factory.

    Postconditions: All subsequent get_engine/get_session_factory calls use this
        engine.  A second call replaces the first.

    Args:
        database_url: PostgreSQL or SQLite connection URL.
        echo: If True, log all SQL statements.
        **engine_kwargs: Pool settings forwarded to create_engine_from_url().

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()

    _engine = create_engine_from_url(database_url, echo=echo, **engine_kwargs)
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "echo": echo,
        },
    )
    return _engine


def get_engine() -> Engine:
    """
    Get the current engine instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """
    Get the session factory.

    Each worker thread creates its own session from this factory.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope(
    factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, session is committed and closed.
        On exception, session is rolled back and closed, and the exception
        is re-raised to the caller.

    Args:
        factory: Session factory to use.  Defaults to the module factory.

    Usage:
        with session_scope() as session:
            session.add(entity)
    """
    session = (factory or get_session_factory())()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    """
    Create all billing tables.

    Args:
        engine: Engine to use.  Defaults to the module engine.
    """
    from billing_kernel.db.base import Base
    import billing_kernel.models  # noqa: F401  (registers tables on Base.metadata)

    Base.metadata.create_all(engine or get_engine())


def drop_tables(engine: Engine | None = None) -> None:
    """Drop all billing tables. Use with caution - primarily for testing."""
    from billing_kernel.db.base import Base
    import billing_kernel.models  # noqa: F401

    Base.metadata.drop_all(engine or get_engine())


def reset_engine() -> None:
    """
    Reset the engine and session factory.

    Useful for test cleanup.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None

    _SessionFactory = None


def _atexit_dispose():
    """Dispose the engine on process exit to release pooled connections."""
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)

