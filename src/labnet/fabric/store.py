"""
Durable baseline storage.

The store writes every collection and then the completion marker inside a
single SQLite transaction. A crash mid-capture rolls everything back, so a
present marker always means a complete baseline.
"""

from __future__ import annotations

from labnet.db import (
    CaptureMarker,
    CollectionSnapshot,
    close_database,
    db,
    initialize_database,
)
from labnet.fabric.exceptions import BaselineExistsError, BaselineMissingError
from labnet.models.enums import ResourceKind
from labnet.models.resources import Baseline
from labnet.utils.logger import get_logger

logger = get_logger(__name__)


class BaselineStore:
    """
    Baseline persisted in a peewee SQLite database.

    Args:
        db_path: SQLite file; its directory is created on open.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._opened = False

    def open(self) -> BaselineStore:
        if not self._opened:
            initialize_database(self.db_path)
            self._opened = True
        return self

    def close(self) -> None:
        if self._opened:
            close_database()
            self._opened = False

    def __enter__(self) -> BaselineStore:
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    def is_complete(self) -> bool:
        """True once a baseline has been fully captured."""
        self.open()
        return CaptureMarker.select().exists()

    def marker(self) -> CaptureMarker | None:
        self.open()
        return CaptureMarker.select().first()

    # -------------------------------------------------------------------------
    # Read / Write
    # -------------------------------------------------------------------------

    def save(self, baseline: Baseline) -> None:
        """
        Persist a baseline exactly once.

        Raises:
            BaselineExistsError: If a complete baseline is already stored.
        """
        self.open()
        if self.is_complete():
            raise BaselineExistsError(self.db_path)

        data = baseline.model_dump(mode="json")
        with db.atomic():
            # Leftovers from an interrupted capture are not a baseline
            CollectionSnapshot.delete().execute()
            for kind in ResourceKind:
                row = CollectionSnapshot(name=kind.value)
                row.set_payload(data[kind.value])
                row.save(force_insert=True)

            marker = CaptureMarker(node=baseline.node)
            if baseline.captured_at is not None:
                marker.completed_at = baseline.captured_at
            marker.set_read_failures(baseline.read_failures)
            marker.save()

        logger.info(f"Baseline saved to {self.db_path}")

    def load(self) -> Baseline:
        """
        Load the stored baseline.

        Raises:
            BaselineMissingError: If no complete baseline is stored.
        """
        marker = self.marker()
        if marker is None:
            raise BaselineMissingError(self.db_path)

        data: dict = {
            "node": marker.node,
            "captured_at": marker.completed_at,
            "read_failures": marker.get_read_failures(),
        }
        for row in CollectionSnapshot.select():
            payload = row.get_payload()
            if payload is not None:
                data[row.name] = payload
        return Baseline(**data)

    def reset(self) -> bool:
        """
        Remove the stored baseline. Returns True if there was one.

        The marker goes first so an interrupted reset never leaves a marker
        pointing at missing collections.
        """
        self.open()
        with db.atomic():
            removed = CaptureMarker.delete().execute()
            CollectionSnapshot.delete().execute()
        if removed:
            logger.warning(f"Baseline at {self.db_path} removed")
        return bool(removed)
