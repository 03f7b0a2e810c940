"""Database engine and helpers.

This module builds the SQLModel/SQLAlchemy engine from the configured
`DATABASE_URL` (a local SQLite file `examhub.db` by default) and provides
small helpers used by the application and tests. The engine is owned by
the application instance (`app.state.engine`) rather than by this module.
"""

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session

from . import models  # noqa: F401  (registers tables on SQLModel.metadata)


def build_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine for `url`.

    SQLite connections are shared across threads (FastAPI runs sync
    handlers in a threadpool) and in-memory databases use a single static
    connection so every session sees the same data.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo, pool_pre_ping=True)
    kwargs = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    engine = create_engine(url, echo=echo, **kwargs)
    event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def _enable_sqlite_foreign_keys(dbapi_connection, _record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_and_tables(engine: Engine):
    """Create database tables using SQLModel metadata.

    This function is intended for local development and lightweight
    scripts; production deployments should rely on a proper migration
    tool (alembic) instead.
    """
    SQLModel.metadata.create_all(engine)


def get_session(request: Request):
    """Yield a database `Session` for FastAPI dependency injection.

    The generator yields a session bound to the application's engine and
    ensures it is closed when the request scope finishes. Uncommitted work
    is rolled back on close.
    """
    with Session(request.app.state.engine) as session:
        yield session
