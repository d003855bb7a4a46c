from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from stakepool.core.config import settings


class Base(DeclarativeBase):
    pass


def _normalize_db_url(url: str) -> str:
    u = (url or "").strip().strip('"').strip("'")
    # Heroku-style scheme is not accepted by SQLAlchemy
    if u.startswith("postgres://"):
        u = "postgresql://" + u[len("postgres://") :]
    return u


DATABASE_URL = _normalize_db_url(settings.DATABASE_URL) or "sqlite+pysqlite:///./local.db"


def _sqlite_write_lock_on_begin(engine: Engine) -> None:
    """
    pysqlite defers BEGIN until the first write, so two transactions can read
    the same position before either writes. Take the database write lock up front.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def make_engine(url: str) -> Engine:
    engine_kwargs: dict = {"pool_pre_ping": True}
    if url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
    engine = create_engine(url, **engine_kwargs)
    if url.startswith("sqlite"):
        _sqlite_write_lock_on_begin(engine)
    return engine


engine = make_engine(DATABASE_URL)

SessionLocal = sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False)


def init_db(bind=None) -> None:
    """
    Create missing tables from the models (local dev / tests; prod uses alembic).
    """
    from stakepool import models_staking  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)


def get_db() -> Iterator[Session]:
    """
    FastAPI dependency: one session per request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def db_session() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
