from typing import List, Optional, Dict, Any
from sqlmodel import SQLModel, Field
from sqlalchemy import JSON, DateTime
from sqlalchemy.types import TypeDecorator
from uuid import UUID, uuid4
from datetime import datetime, timezone
from enum import Enum


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC timestamps, also on backends that store them naive (SQLite)"""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class RunStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class DriftRun(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    watched_root: str = Field(index=True)
    started_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime, index=True)
    finished_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    status: RunStatus = Field(default=RunStatus.SUCCEEDED)
    bootstrap: bool = Field(default=False)

    policy_count: int = Field(default=0)
    added_count: int = Field(default=0)
    changed_count: int = Field(default=0)
    removed_count: int = Field(default=0)

    backup_folder: Optional[str] = Field(default=None)
    snapshot_saved: bool = Field(default=False)
    notification_sent: bool = Field(default=False)
    failures: Optional[List[Dict[str, Any]]] = Field(default=None, sa_type=JSON)
    error: Optional[str] = Field(default=None)
    triggered_by: Optional[str] = Field(default=None)  # "schedule", "api", "cli"


class PolicyChange(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    run_id: UUID = Field(foreign_key="driftrun.id", index=True)
    change_type: str = Field(index=True)  # "added", "changed", "removed"
    policy_id: str = Field(index=True)
    display_name: str
    organizational_path: str
    modification_time: datetime = Field(sa_type=UTCDateTime)
    enabled: bool = Field(default=True)
