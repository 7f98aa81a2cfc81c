"""
Database engine, session factory and declarative base.

The engine is owned by a ``Database`` instance that the application builds on
startup and disposes on shutdown (see ``app.main``). Request handlers obtain
sessions through the ``get_db`` dependency, which reads the instance from
``request.app.state``.
"""
import logging
from contextlib import contextmanager
from typing import Callable, ContextManager, Iterator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.core.errors import ConflictError

logger = logging.getLogger(__name__)

Base = declarative_base()


class Database:
    """Owns one SQLAlchemy engine and its session factory."""

    def __init__(self, url: str, echo: bool = False, **engine_kwargs):
        if url.startswith("sqlite"):
            engine_kwargs.setdefault("connect_args", {"check_same_thread": False})
        else:
            engine_kwargs.setdefault("pool_pre_ping", True)
        self.engine = create_engine(url, echo=echo, **engine_kwargs)
        self.session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def create_all(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        db = self.session_factory()
        try:
            yield db
        finally:
            db.close()

    def dispose(self) -> None:
        self.engine.dispose()


def get_db(request: Request) -> Iterator[Session]:
    """
    FastAPI dependency yielding a session bound to the application's database.
    """
    database: Database = request.app.state.database
    with database.session() as db:
        yield db


def get_session_scope(request: Request) -> Callable[[], ContextManager[Session]]:
    """
    FastAPI dependency returning a factory for fresh sessions.

    Background tasks run after the request session is closed and open their own.
    """
    database: Database = request.app.state.database
    return database.session


def commit(db: Session) -> None:
    """
    Commit the session, translating unique violations into ConflictError.

    Any other database error is rolled back and re-raised unchanged.
    """
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning(f"Integrity violation on commit: {exc.orig}")
        raise ConflictError() from exc
    except Exception:
        db.rollback()
        raise
