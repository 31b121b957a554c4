"""
Database Module
"""
from .connection import init_database, close_database, get_db, get_db_dependency, get_session_factory
from .models import Base

__all__ = [
    "init_database",
    "close_database",
    "get_db",
    "get_db_dependency",
    "get_session_factory",
    "Base",
]
