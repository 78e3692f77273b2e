"""Database engine, sessions and declarative base."""

from tablegraph.db.base import Base, BaseModel
from tablegraph.db.session import get_db, get_db_context

__all__ = ["Base", "BaseModel", "get_db", "get_db_context"]
