"""
Module: fleet_kernel.db.engine
Responsibility: the process-wide engine and session factory, and the
    commit-or-rollback boundary every CLI command runs inside.
Architecture position: Kernel > DB.  create_tables imports models and the
    immutability listeners lazily; nothing else here reaches above db/.

Invariants enforced:
    - SQLite connections run with foreign keys enabled, so an expense or
      payment can never point at a missing trip.
    - PostgreSQL sessions run at READ COMMITTED.  TripGuard's conditional
      UPDATE takes the trip row lock, so two closes of one trip serialize
      and the second sees the new status.
    - Services flush; only session_scope() commits.

Failure modes:
    - RuntimeError when a session is requested before init_engine_from_url().
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from fleet_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_SERVER_POOL = {
    "pool_size": 5,
    "max_overflow": 5,
    "pool_pre_ping": True,
    "pool_recycle": 1800,
}

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_engine_from_url(database_url: str, echo: bool = False) -> Engine:
    """
    Create the engine for ``database_url`` and bind the session factory to it.

    A second call replaces the first.  SQLite files are shared across
    threads (the close-race tests open one session per thread); server
    databases get a small pre-pinged pool.
    """
    global _engine, _SessionFactory

    url = make_url(database_url)
    backend = url.get_backend_name()

    if backend == "sqlite":
        _engine = create_engine(url, echo=echo, connect_args={"check_same_thread": False})
        event.listen(_engine, "connect", _sqlite_foreign_keys)
    else:
        _engine = create_engine(
            url, echo=echo, isolation_level="READ COMMITTED", **_SERVER_POOL
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"backend": backend, "database": url.render_as_string(hide_password=True)},
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """A new session from the current factory; callers own closing it."""
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    One unit of work: commit on normal exit, roll back and re-raise otherwise.

    Usage:
        with session_scope() as session:
            TripService(session).close_trip(trip_id, actor="ravi")
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception as exc:
        session.rollback()
        logger.warning(
            "transaction_rolled_back",
            extra={"error_code": getattr(exc, "code", type(exc).__name__)},
        )
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create the fleet tables and register the closed-trip listeners."""
    from fleet_kernel.db.base import Base
    from fleet_kernel.db.immutability import register_immutability_listeners
    from fleet_kernel.models import import_all_models

    import_all_models()
    Base.metadata.create_all(get_engine())
    register_immutability_listeners()

    logger.info("tables_created", extra={"tables": sorted(Base.metadata.tables)})


def drop_tables() -> None:
    """Drop every fleet table.  Tests only."""
    from fleet_kernel.db.base import Base
    from fleet_kernel.models import import_all_models

    import_all_models()
    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory.  Tests only."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None
