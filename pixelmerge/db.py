from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from pixelmerge.config import settings
from pixelmerge.models import Base


def build_engine(url: str) -> Engine:
    """Engine for the render cache store.

    SQLite connections are shared with the threadpool that runs sync
    endpoints, so the same-thread check is turned off for them.
    """
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, future=True, pool_pre_ping=True, connect_args=connect_args)


engine = build_engine(settings.RENDER_CACHE_DB_URL)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


def init_db(bind: Engine | None = None) -> None:
    Base.metadata.create_all(bind=bind or engine)


def ping(bind: Engine | None = None) -> str | None:
    """Run ``SELECT 1``; return the error text, or None when the store answers."""
    try:
        with (bind or engine).connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        return str(exc)
    return None


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session that is rolled back on error and always closed."""
    session = SessionLocal()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_session() -> Iterator[Session]:
    with session_scope() as session:
        yield session
