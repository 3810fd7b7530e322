"""
AURACLE persistence layer (SQLAlchemy)
"""

from .session import get_engine, init_db, get_session_factory, session_scope
from .repository import StoryRepository, TimelineRepository

__all__ = [
    "get_engine",
    "init_db",
    "get_session_factory",
    "session_scope",
    "StoryRepository",
    "TimelineRepository",
]
