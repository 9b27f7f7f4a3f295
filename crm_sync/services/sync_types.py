"""Value types shared by the sync job and reconciliation services."""

from dataclasses import dataclass, field, fields, asdict
from enum import Enum
from typing import Any, Dict, List, Optional


class RecordOutcome(str, Enum):
    """Fate of a single record inside one reconciliation call."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclass
class SyncStats:
    """Reconciliation counters.

    ``processed`` always equals ``created + updated + unchanged``. Deleted ids
    are absent from the incoming batch, so ``deleted`` is counted outside
    ``processed``; so is ``failed``.
    """

    processed: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    deleted: int = 0
    failed: int = 0

    def record(self, outcome: RecordOutcome) -> None:
        """Fold one record outcome into the counters."""
        if outcome is RecordOutcome.FAILED:
            self.failed += 1
            return
        setattr(self, outcome.value, getattr(self, outcome.value) + 1)
        self.processed += 1

    def merge(self, other: "SyncStats") -> "SyncStats":
        """Return the field-wise sum of both stats."""
        return SyncStats(**{
            f.name: getattr(self, f.name) + getattr(other, f.name)
            for f in fields(self)
        })

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SyncStats":
        """Build stats from a stored mapping, zero-filling missing counters."""
        data = data or {}
        return cls(**{f.name: int(data.get(f.name) or 0) for f in fields(cls)})


def empty_summary() -> Dict[str, Any]:
    """Zeroed job summary: ``{"total": stats, "byType": {}}``."""
    return {"total": SyncStats().to_dict(), "byType": {}}


def normalize_summary(summary: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Copy a stored summary, defaulting absent parts to zero."""
    summary = summary or {}
    return {
        "total": SyncStats.from_dict(summary.get("total")).to_dict(),
        "byType": {
            record_type: SyncStats.from_dict(stats).to_dict()
            for record_type, stats in (summary.get("byType") or {}).items()
        },
    }


@dataclass
class SyncDataset:
    """One adapter-supplied batch of raw records for a single record type."""

    record_type: str
    records: List[Dict[str, Any]] = field(default_factory=list)
    external_id_field: Optional[str] = None
    deleted_external_ids: Optional[List[str]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncDataset":
        """Build a dataset from a camelCase or snake_case mapping."""
        return cls(
            record_type=data.get("recordType") or data["record_type"],
            records=list(data.get("records") or []),
            external_id_field=data.get("externalIdField", data.get("external_id_field")),
            deleted_external_ids=data.get("deletedExternalIds", data.get("deleted_external_ids")),
        )
