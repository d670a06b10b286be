"""
SQLite connection shared by the baseline tables.

The database object is created unbound; initialize_database() points it at a
file (one baseline per file) and creates the tables on first use. WAL with
full sync keeps a capture that dies half-way from corrupting the file.
"""

import os

import peewee

from labnet.utils.logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# Database Instance
# =============================================================================

# Bound to a file by initialize_database()
db = peewee.SqliteDatabase(None)


# =============================================================================
# Base Model
# =============================================================================


class BaseModel(peewee.Model):
    """Base model sharing the global database connection."""

    class Meta:
        database = db


# =============================================================================
# Database Lifecycle
# =============================================================================


def initialize_database(db_path: str) -> None:
    """
    Bind the shared database to a file and create the baseline tables.

    The parent directory is created when missing. Re-initializing with
    another path closes the previous connection first.

    Args:
        db_path: Path to the SQLite database file, or ":memory:".

    Raises:
        peewee.OperationalError: If database connection fails.
    """
    # Models import BaseModel from this module
    from labnet.db.baseline import CaptureMarker, CollectionSnapshot

    if db_path != ":memory:":
        parent = os.path.dirname(os.path.abspath(db_path))
        os.makedirs(parent, exist_ok=True)

    logger.debug(f"Initializing database at: {db_path}")

    try:
        if not db.is_closed():
            db.close()
        db.init(db_path, pragmas={"journal_mode": "wal", "synchronous": "full"})
        db.connect()
        db.create_tables([CollectionSnapshot, CaptureMarker], safe=True)

        logger.debug(
            f"Database ready: {db_path} "
            f"({CollectionSnapshot.select().count()} stored collections)"
        )

    except peewee.OperationalError as e:
        logger.error(f"Failed to initialize database '{db_path}': {e}")
        raise


def close_database() -> None:
    """Close the shared connection; a no-op when already closed."""
    if not db.is_closed():
        db.close()
        logger.debug("Database connection closed")
