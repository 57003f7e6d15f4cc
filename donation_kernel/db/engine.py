"""
Engine and session management for the donation ledger.

One module-level engine and session factory, created by
init_engine_from_url() and shared by the portal, the CLI and the tests.

Backends:
    - PostgreSQL in production.  READ COMMITTED; inventory rows are locked
      with SELECT ... FOR UPDATE and donation status moves are
      compare-and-swap updates, so nothing here needs a stricter level.
    - SQLite for local runs and tests.  SQLite has no row locks, so every
      transaction opens with BEGIN IMMEDIATE and writers queue on the
      database lock for up to SQLITE_BUSY_TIMEOUT_SECONDS.

session_scope() is the only place a transaction is committed; kernel
services flush and leave commit or rollback to whoever opened the scope.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from donation_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

SQLITE_BUSY_TIMEOUT_SECONDS = 30

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _sqlite_begin_immediate(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _configure_connection(dbapi_connection, connection_record):
        # pysqlite would otherwise issue its own deferred BEGIN.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_SECONDS * 1000}")
        finally:
            cursor.close()

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create the shared engine and session factory.

    Calling it again replaces the previous engine without disposing it;
    call reset_engine() first when switching databases.
    """
    global _engine, _SessionFactory

    url = make_url(database_url)
    is_sqlite = url.get_backend_name() == "sqlite"

    options: dict = {
        "echo": echo,
        "poolclass": QueuePool,
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_timeout": pool_timeout,
    }
    if is_sqlite:
        options["connect_args"] = {
            "check_same_thread": False,
            "timeout": SQLITE_BUSY_TIMEOUT_SECONDS,
        }
    else:
        options.update(
            pool_pre_ping=True,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    _engine = create_engine(url, **options)
    if is_sqlite:
        _sqlite_begin_immediate(_engine)
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": url.get_backend_name(),
            "database": url.database,
            "pool_size": pool_size,
        },
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Database engine not initialized; call init_engine_from_url()")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Factory for new sessions; one session per thread or per portal call."""
    if _SessionFactory is None:
        raise RuntimeError("Database engine not initialized; call init_engine_from_url()")
    return _SessionFactory


@contextmanager
def session_scope(
    factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """
    One transaction: commit when the block exits normally, otherwise roll
    back and re-raise.  The session is always closed.

        with session_scope() as session:
            InventoryService(session, clock).adjust(...)
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def _metadata():
    # Importing the models package registers every table on Base.metadata.
    import donation_kernel.models  # noqa: F401
    from donation_kernel.db.base import Base

    return Base.metadata


def create_tables() -> None:
    metadata = _metadata()
    metadata.create_all(get_engine())
    logger.info("tables_created", extra={"table_count": len(metadata.tables)})


def drop_tables() -> None:
    """Drop every ledger table.  Tests only."""
    _metadata().drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None
