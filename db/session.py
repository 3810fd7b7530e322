"""
Engine and session management.
"""
import os
from contextlib import contextmanager
from functools import lru_cache
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from config import get_database_url
from db.models import Base
from utils.logger import get_logger

logger = get_logger("db")


@lru_cache(maxsize=5)
def get_engine(database_url: Optional[str] = None) -> Engine:
    """
    Engine for a database URL (cached per URL). Tables are created on first use.
    """
    url = database_url or get_database_url()
    kwargs = {}
    if url.startswith("sqlite"):
        # API background tasks run on worker threads
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        else:
            db_path = url.replace("sqlite:///", "", 1)
            db_dir = os.path.dirname(db_path)
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)

    engine = create_engine(url, **kwargs)
    Base.metadata.create_all(engine)
    logger.debug(f"Engine ready: {engine.url.render_as_string(hide_password=True)}")
    return engine


def init_db(database_url: Optional[str] = None) -> Engine:
    return get_engine(database_url)


def get_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    """Commit on success, roll back on error, always close."""
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
