"""Database package for DriveHub."""

from drivehub.db.base import Base
from drivehub.db.session import async_session_maker, engine, get_db

__all__ = [
    "Base",
    "async_session_maker",
    "engine",
    "get_db",
]
