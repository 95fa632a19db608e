"""
Policy Drift Types
------------------
This module defines the data model used for drift detection: the policy
records observed in one run, the snapshot that groups them, and the change
set produced by comparing two snapshots.
"""

from enum import Enum
from typing import List, Optional, Iterable, Dict
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, timezone
from uuid import UUID, uuid4


class ChangeType(str, Enum):
    """Classification of a policy between two runs."""

    ADDED = "added"
    CHANGED = "changed"
    REMOVED = "removed"


class FailureKind(str, Enum):
    BACKUP = "backup"
    REPORT = "report"
    NOTIFICATION = "notification"


class PolicyRecord(BaseModel):
    """Metadata of one linked policy as observed in one run."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    display_name: str
    modification_time: datetime
    enabled: bool = True
    organizational_path: str = ""


class Snapshot(BaseModel):
    """
    Complete set of policy metadata observed under a watched root.
    Records are unique by identifier and keep the order they were seen in.
    """

    model_config = ConfigDict(frozen=True)

    watched_root: str = ""
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    records: List[PolicyRecord] = []

    @classmethod
    def from_records(
        cls,
        records: Iterable[PolicyRecord],
        watched_root: str = "",
        captured_at: Optional[datetime] = None
    ) -> "Snapshot":
        """
        Build a snapshot keyed by identifier.

        A policy linked at several locations appears once, at the position of
        its first link, carrying the attributes of the last link seen.
        """
        merged: Dict[str, PolicyRecord] = {}
        for record in records:
            merged[record.identifier] = record

        kwargs = {"watched_root": watched_root, "records": list(merged.values())}
        if captured_at is not None:
            kwargs["captured_at"] = captured_at
        return cls(**kwargs)

    def by_identifier(self) -> Dict[str, PolicyRecord]:
        return {record.identifier: record for record in self.records}

    @property
    def identifiers(self) -> List[str]:
        return [record.identifier for record in self.records]

    def __len__(self) -> int:
        return len(self.records)


class ChangeSet(BaseModel):
    """Added, changed and removed policies of one run."""

    added: List[PolicyRecord] = []
    changed: List[PolicyRecord] = []
    removed: List[PolicyRecord] = []

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.changed or self.removed)

    @property
    def affected(self) -> List[PolicyRecord]:
        """Policies whose content has to be backed up."""
        return self.added + self.changed

    @property
    def total(self) -> int:
        return len(self.added) + len(self.changed) + len(self.removed)

    def sections(self) -> List[tuple]:
        return [
            (ChangeType.ADDED, self.added),
            (ChangeType.CHANGED, self.changed),
            (ChangeType.REMOVED, self.removed),
        ]


class DispatchFailure(BaseModel):
    """A per-record failure that did not abort the run."""

    kind: FailureKind
    message: str
    identifier: Optional[str] = None
    display_name: Optional[str] = None


class RunResult(BaseModel):
    """Outcome of one drift detection run."""

    id: UUID = Field(default_factory=uuid4)
    watched_root: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    bootstrap: bool = False
    changes: ChangeSet = Field(default_factory=ChangeSet)
    policy_count: int = 0
    backup_folder: Optional[str] = None
    backed_up: List[str] = []
    failures: List[DispatchFailure] = []
    snapshot_saved: bool = False
    notification_sent: bool = False

    @property
    def changed(self) -> bool:
        """Check if the run detected anything to act on."""
        return self.bootstrap or not self.changes.is_empty

    def summary(self) -> Dict[str, object]:
        return {
            "run_id": str(self.id),
            "watched_root": self.watched_root,
            "bootstrap": self.bootstrap,
            "policies": self.policy_count,
            "added": len(self.changes.added),
            "changed": len(self.changes.changed),
            "removed": len(self.changes.removed),
            "backed_up": len(self.backed_up),
            "failures": len(self.failures),
            "snapshot_saved": self.snapshot_saved,
            "notification_sent": self.notification_sent,
        }
