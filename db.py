from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Connection, Engine, make_url

from settings import settings

_engine: Engine | None = None


def _ensure_sqlite_path(url: str) -> None:
    parsed = make_url(url)
    database = parsed.database
    if not database or database == ":memory:":
        return
    Path(database).parent.mkdir(parents=True, exist_ok=True)


def _create_engine(url: str) -> Engine:
    parsed = make_url(url)
    backend = parsed.get_backend_name()

    connect_args: dict[str, object] = {}
    engine_kwargs: dict[str, object] = {"future": True, "pool_pre_ping": True}

    if backend == "sqlite":
        connect_args["check_same_thread"] = False
        _ensure_sqlite_path(url)
    else:
        connect_args["connect_timeout"] = 5
        connect_args["application_name"] = "gigsec_api"
        engine_kwargs["pool_size"] = 10
        engine_kwargs["pool_recycle"] = 300

    engine = create_engine(url, connect_args=connect_args, **engine_kwargs)

    if backend == "sqlite":
        @event.listens_for(engine, "connect")
        def _sqlite_pragmas(dbapi_conn, _record):
            # let SQLAlchemy emit BEGIN itself so SAVEPOINTs behave
            dbapi_conn.isolation_level = None
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA foreign_keys=ON;")
            cur.close()

        @event.listens_for(engine, "begin")
        def _sqlite_begin(conn):
            conn.exec_driver_sql("BEGIN")

    return engine


def init_engine() -> Engine:
    """
    Initialize the SQLAlchemy engine (and its connection pool).
    Called once at app startup, or lazily on first use.
    """
    global _engine
    if _engine is None:
        _engine = _create_engine(settings.DATABASE_URL)
    return _engine


def close_engine() -> None:
    """
    Gracefully close all pooled connections.
    """
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None


@contextmanager
def get_conn():
    """
    Provides a transactional DB connection.
    Auto-commits on success, rolls back on error.
    """
    engine = init_engine()

    with engine.begin() as conn:
        if conn.dialect.name == "postgresql":
            # Safety: never allow long-running queries
            timeout = f"{int(settings.DB_STATEMENT_TIMEOUT_MS)}ms"
            conn.execute(text("SELECT set_config('statement_timeout', :t, true)"), {"t": timeout})
            conn.execute(text("SELECT set_config('idle_in_transaction_session_timeout', :t, true)"), {"t": timeout})
        yield conn


def create_all() -> None:
    """Create every table declared in app.store.schema (dev/test bootstrap; prod uses alembic)."""
    from app.store.schema import metadata

    metadata.create_all(init_engine())


__all__ = ["Connection", "init_engine", "close_engine", "get_conn", "create_all"]
