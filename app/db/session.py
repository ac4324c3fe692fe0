from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, ContextManager

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from app.db.models import Base

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False)

SessionScope = Callable[[], ContextManager[Session]]


def init_engine(database_url: str, **engine_kwargs):
    engine = create_engine(database_url, pool_pre_ping=True, future=True, **engine_kwargs)
    if engine.dialect.name == "sqlite":
        enable_sqlite_savepoints(engine)
    SessionLocal.configure(bind=engine)
    return engine


def enable_sqlite_savepoints(engine) -> None:
    """Let SQLAlchemy emit BEGIN itself so pysqlite honours SAVEPOINT."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_schema(engine) -> None:
    Base.metadata.create_all(engine)


def _ensure_initialized() -> None:
    if SessionLocal.kw.get("bind") is None:
        raise RuntimeError("Database engine not initialized. Call init_engine() before use.")


@contextmanager
def session_scope(factory: sessionmaker):
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def get_session():
    _ensure_initialized()
    with session_scope(SessionLocal) as session:
        yield session


def scope_factory(factory: sessionmaker) -> SessionScope:
    return lambda: session_scope(factory)
