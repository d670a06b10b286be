"""
Outcome reports for restore and apply passes.

Reports are built up while a pass runs and returned to the caller; the CLI
renders them as tables or dumps them as JSON/YAML.
"""

from pydantic import BaseModel, Field

from labnet.models.enums import DeletionOutcome, ResourceKind


# =============================================================================
# Restore Report
# =============================================================================


class DeletionRecord(BaseModel):
    """One attempted deletion."""

    identity: str
    outcome: DeletionOutcome
    reason: str | None = None


class OptionAlignment(BaseModel):
    """A scalar option overwritten with its baseline value."""

    key: str
    live: int
    baseline: int
    applied: bool = True
    reason: str | None = None


class CollectionReport(BaseModel):
    """Restore outcome for one collection."""

    kind: ResourceKind
    kept: list[str] = Field(default_factory=list)
    deletions: list[DeletionRecord] = Field(default_factory=list)
    missing: list[str] = Field(default_factory=list)
    alignments: list[OptionAlignment] = Field(default_factory=list)
    read_failed: bool = False
    read_error: str | None = None
    notes: list[str] = Field(default_factory=list)

    @property
    def deleted(self) -> list[str]:
        return [
            d.identity for d in self.deletions if d.outcome == DeletionOutcome.DELETED
        ]

    @property
    def failed(self) -> list[DeletionRecord]:
        return [d for d in self.deletions if d.outcome == DeletionOutcome.FAILED]

    def record_deleted(self, identity: str) -> None:
        self.deletions.append(
            DeletionRecord(identity=identity, outcome=DeletionOutcome.DELETED)
        )

    def record_failed(self, identity: str, reason: str) -> None:
        self.deletions.append(
            DeletionRecord(
                identity=identity, outcome=DeletionOutcome.FAILED, reason=reason
            )
        )


class ReconciliationReport(BaseModel):
    """Restore outcome across all collections, in processing order."""

    collections: dict[str, CollectionReport] = Field(default_factory=dict)

    def collection(self, kind: ResourceKind) -> CollectionReport:
        """Get the report for a kind, creating it on first use."""
        if kind.value not in self.collections:
            self.collections[kind.value] = CollectionReport(kind=kind)
        return self.collections[kind.value]

    @property
    def has_failures(self) -> bool:
        """True if any deletion or alignment failed, or any live read failed."""
        return any(
            c.failed or c.read_failed or any(not a.applied for a in c.alignments)
            for c in self.collections.values()
        )

    @property
    def deleted_count(self) -> int:
        return sum(len(c.deleted) for c in self.collections.values())

    @property
    def missing_count(self) -> int:
        return sum(len(c.missing) for c in self.collections.values())

    @property
    def failed_count(self) -> int:
        return sum(len(c.failed) for c in self.collections.values())

    @property
    def read_failed_count(self) -> int:
        return sum(1 for c in self.collections.values() if c.read_failed)

    @property
    def alignment_failed_count(self) -> int:
        return sum(
            1
            for c in self.collections.values()
            for a in c.alignments
            if not a.applied
        )


# =============================================================================
# Apply Report
# =============================================================================


class SkippedItem(BaseModel):
    """A best-effort create that failed and was skipped."""

    identity: str
    reason: str


class KindApplyReport(BaseModel):
    """Apply outcome for one resource kind."""

    kind: ResourceKind
    created: list[str] = Field(default_factory=list)
    present: list[str] = Field(default_factory=list)
    skipped: list[SkippedItem] = Field(default_factory=list)


class ApplyReport(BaseModel):
    """Apply outcome across all kinds."""

    kinds: dict[str, KindApplyReport] = Field(default_factory=dict)

    def kind(self, kind: ResourceKind) -> KindApplyReport:
        if kind.value not in self.kinds:
            self.kinds[kind.value] = KindApplyReport(kind=kind)
        return self.kinds[kind.value]

    @property
    def created_count(self) -> int:
        return sum(len(k.created) for k in self.kinds.values())

    @property
    def skipped_count(self) -> int:
        return sum(len(k.skipped) for k in self.kinds.values())
