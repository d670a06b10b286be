"""
Baseline database models.

A baseline is stored as one CollectionSnapshot row per tracked collection
plus a single CaptureMarker row. The marker is written in the same
transaction as the snapshots, after them, so its presence means the whole
baseline is on disk.
"""

import datetime
import json

import peewee

from labnet.db.base import BaseModel


# =============================================================================
# Collection Snapshot
# =============================================================================


class CollectionSnapshot(BaseModel):
    """
    Stored copy of one collection.

    Attributes:
        name: Collection name (a ResourceKind value).
        payload: Collection contents as JSON.
        captured_at: When the row was written.
    """

    name = peewee.CharField(unique=True, primary_key=True)
    payload = peewee.TextField(default="null")
    captured_at = peewee.DateTimeField(default=datetime.datetime.now)

    class Meta:
        table_name = "collection_snapshots"

    def get_payload(self):
        """Parse the stored JSON payload, None if unreadable."""
        try:
            return json.loads(self.payload)
        except (json.JSONDecodeError, TypeError):
            return None

    def set_payload(self, value) -> None:
        """Store a value as canonical JSON."""
        self.payload = json.dumps(value, sort_keys=True, default=str)


# =============================================================================
# Capture Marker
# =============================================================================


class CaptureMarker(BaseModel):
    """
    Marks the baseline as completely captured.

    Attributes:
        node: Node the baseline was captured on.
        completed_at: When capture finished.
        read_failures: JSON list of collections that could not be read.
    """

    node = peewee.CharField(default="")
    completed_at = peewee.DateTimeField(default=datetime.datetime.now)
    read_failures = peewee.TextField(default="[]")

    class Meta:
        table_name = "capture_marker"

    def get_read_failures(self) -> list[str]:
        try:
            return json.loads(self.read_failures)
        except json.JSONDecodeError:
            return []

    def set_read_failures(self, names: list[str]) -> None:
        self.read_failures = json.dumps(list(names))

    def to_dict(self) -> dict:
        return {
            "node": self.node,
            "completed_at": (
                self.completed_at.isoformat() if self.completed_at else None
            ),
            "read_failures": self.get_read_failures(),
        }
