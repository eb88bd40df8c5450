"""
Database engine, session factory, and metadata shared across the application.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Callable, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeMeta, Session, declarative_base, sessionmaker

from app.core.config import settings

logger = logging.getLogger(__name__)

_POSTGRES_POOL_KWARGS: dict[str, Any] = {
    "pool_size": 5,
    "max_overflow": 5,
    # Fail fast when the pool is exhausted instead of queueing requests
    "pool_timeout": 2,
    "pool_recycle": 300,
    "pool_pre_ping": True,
}


def _build_engine_kwargs(db_url: str) -> dict[str, Any]:
    """Engine options for the configured dialect."""
    if db_url.startswith("sqlite"):
        # Requests run in a threadpool; the same connection may cross threads
        return {"connect_args": {"check_same_thread": False}}
    return dict(_POSTGRES_POOL_KWARGS)


engine: Engine = create_engine(settings.database_url, **_build_engine_kwargs(settings.database_url))


# Log pool events for monitoring
@event.listens_for(engine, "connect")
def receive_connect(dbapi_connection: Any, connection_record: Any) -> None:
    connection_record.info["connect_time"] = datetime.now()
    logger.debug("Database connection established")


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

Base: DeclarativeMeta = declarative_base()

SessionFactory = Callable[[], Session]


def get_db() -> Generator[Session, None, None]:
    """Get database session with proper cleanup."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_session_factory() -> SessionFactory:
    """
    Session factory for work that outlives the request session.

    Background notification jobs open their own session after the
    response has been sent; tests override this to bind their engine.
    """
    return SessionLocal


def init_db() -> None:
    """Create all tables registered on ``Base``."""
    from app import models  # noqa: F401  # registers mappers

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured")
