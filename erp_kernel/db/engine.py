"""
Module: erp_kernel.db.engine
Responsibility: Engines for PostgreSQL and SQLite, the process-wide session
    factory, and session_scope(), the unit-of-work boundary around every
    stock, document and payment operation.
Architecture position: Kernel > DB.  Imports db/base.py and, lazily inside
    create_tables/drop_tables, the models package.  Never imports services/,
    selectors/ or domain/.

Invariants enforced:
    - PostgreSQL is the production backend: READ COMMITTED isolation with
      explicit row-level locking (SELECT ... FOR UPDATE) on item, document,
      payment and sequence rows.
    - SQLite is accepted for tests and local use.  pysqlite's implicit
      transaction handling is replaced on connect so that SAVEPOINT (used by
      the sequence service) behaves like PostgreSQL.
    - session_scope() is the only commit point.  Services flush; callers
      commit or roll back the whole unit of work.

Failure modes:
    - RuntimeError from the global accessors until init_engine_from_url() runs.
    - sqlalchemy TimeoutError once pool_size + max_overflow connections are
      checked out for longer than pool_timeout.
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from erp_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def install_sqlite_savepoint_support(engine: Engine) -> None:
    """
    Let SQLAlchemy own BEGIN on a pysqlite engine.

    Without this, pysqlite defers BEGIN until the first DML statement and
    nested transactions (SAVEPOINT) do not roll back correctly.
    """

    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """Create an engine for PostgreSQL or SQLite without registering it globally."""
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        in_memory = url.database in (None, "", ":memory:")
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool if in_memory else QueuePool,
        )
        install_sqlite_savepoint_support(engine)
        return engine

    return create_engine(
        database_url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(database_url: str, echo: bool = False, **pool_options) -> Engine:
    """
    Build the process-wide engine used by session_scope() and scripts.

    ``pool_options`` are passed to build_engine(); SQLite ignores them.
    Calling this again replaces the engine without disposing the old pool,
    so call reset_engine() first when switching databases.
    """
    global _engine, _SessionFactory

    _engine = build_engine(database_url, echo=echo, **pool_options)
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": _engine.dialect.name, "echo": echo})
    return _engine


def _require_factory() -> sessionmaker[Session]:
    if _SessionFactory is None or _engine is None:
        raise RuntimeError("Engine not initialized: call init_engine_from_url() first")
    return _SessionFactory


def get_engine() -> Engine:
    _require_factory()
    return _engine


def get_session() -> Session:
    """A new Session on the global engine.  The caller owns it."""
    return _require_factory()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    One unit of work: commit when the block finishes, roll back when it raises.

    A business error raised part way through a stock movement or a payment
    therefore leaves no ledger row, balance change or sequence number behind.

        with session_scope() as session:
            ErpKernel(session).payments.create_payment(request)
    """
    session = get_session()
    try:
        yield session
    except Exception:
        session.rollback()
        logger.warning("unit_of_work_rolled_back", exc_info=True)
        raise
    else:
        session.commit()
        logger.debug("unit_of_work_committed")
    finally:
        session.close()


def _metadata():
    from erp_kernel.db.base import Base
    import erp_kernel.models  # noqa: F401  registers every table

    return Base.metadata


def create_tables(engine: Engine | None = None) -> None:
    _metadata().create_all(engine or get_engine())


def drop_tables(engine: Engine | None = None) -> None:
    _metadata().drop_all(engine or get_engine())


def reset_engine() -> None:
    """Dispose the global pool and forget the session factory."""
    global _engine, _SessionFactory
    engine, _engine, _SessionFactory = _engine, None, None
    if engine is not None:
        engine.dispose()


atexit.register(reset_engine)


def is_postgres() -> bool:
    return _engine is not None and _engine.dialect.name == "postgresql"
