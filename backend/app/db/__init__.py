"""Database package."""
from .database import engine, init_db

__all__ = [
    "engine",
    "init_db",
]
