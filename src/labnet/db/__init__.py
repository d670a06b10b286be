"""
Baseline persistence on SQLite via peewee.

    from labnet.db import initialize_database, CollectionSnapshot, CaptureMarker
"""

from labnet.db.base import BaseModel, close_database, db, initialize_database
from labnet.db.baseline import CaptureMarker, CollectionSnapshot

__all__ = [
    "db",
    "BaseModel",
    "initialize_database",
    "close_database",
    "CollectionSnapshot",
    "CaptureMarker",
]
