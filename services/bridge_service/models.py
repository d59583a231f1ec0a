"""Domain types for the bridge: members, access decisions, queue items,
attendance records and the run summaries reported by batch jobs."""

import enum
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

# Batch endpoints never report more than this many per-item errors.
MAX_REPORTED_ERRORS = 50


class Member(BaseModel):
    """A membership record as read from the backend (read-only here)."""

    id: int
    name: str = ""
    validity: Optional[date] = None  # Inclusive last day of access
    blocked: bool = False
    active: bool = False
    site_id: Optional[int] = None

    @field_validator("validity", mode="before")
    @classmethod
    def date_part_only(cls, v: Any) -> Any:
        # Backends hand out either "2025-01-10" or a full timestamp for the day.
        if isinstance(v, str):
            v = v.strip()
            if not v:
                return None
            return v[:10]
        return v

    @classmethod
    def from_backend(cls, raw: dict) -> "Member":
        """Parse either the nested ``{id, attributes: {...}}`` or a flat record."""
        attributes = raw.get("attributes") or raw
        return cls(
            id=raw["id"],
            name=attributes.get("name") or "",
            validity=attributes.get("validity"),
            blocked=bool(attributes.get("blocked")),
            active=bool(attributes.get("active")),
            site_id=_relation_id(attributes.get("gym")),
        )


def _relation_id(relation: Any) -> Optional[int]:
    if isinstance(relation, int):
        return relation
    if isinstance(relation, dict):
        data = relation.get("data", relation)
        if isinstance(data, dict) and data.get("id") is not None:
            return int(data["id"])
    return None


@dataclass(frozen=True)
class AccessDecision:
    """Whether a member belongs on the device, and for which window."""

    present: bool
    begin_time: datetime
    end_time: datetime


class ReconcileAction(str, enum.Enum):
    UPSERTED = "upserted"
    DELETED = "deleted"
    SKIPPED = "skipped"  # Absent member was already gone from the device


@dataclass(frozen=True)
class ReconcileResult:
    member_id: int
    action: ReconcileAction
    decision: AccessDecision


class QueueItemType(str, enum.Enum):
    ATTENDANCE = "attendance"


class QueueItem(BaseModel):
    """One pending outbound event persisted by the durable queue."""

    id: str
    type: str
    payload: dict[str, Any]
    enqueued_at: datetime
    retry_count: int = Field(default=0, ge=0)


class AttendanceRecord(BaseModel):
    """Canonical attendance shape delivered to the backend."""

    member_id: int
    site_id: int
    date: date
    check_in: str  # HH:MM:SS, site-local
    check_out: Optional[str] = None


class IngestOutcome(str, enum.Enum):
    DELIVERED = "delivered"
    QUEUED = "queued"
    REJECTED = "rejected"


@dataclass(frozen=True)
class IngestResult:
    outcome: IngestOutcome
    reason: Optional[str] = None
    queue_id: Optional[str] = None
    record: Optional[AttendanceRecord] = None


class _BatchSummary(BaseModel):
    errors: List[str] = Field(default_factory=list)

    def add_error(self, message: str) -> None:
        if len(self.errors) < MAX_REPORTED_ERRORS:
            self.errors.append(message)


class SyncSummary(_BatchSummary):
    total: int = 0
    successful: int = 0
    failed: int = 0


class PullSummary(_BatchSummary):
    total: int = 0
    successful: int = 0
    queued: int = 0
    failed: int = 0


class SweepSummary(BaseModel):
    processed: int = 0
    delivered: int = 0
    retried: int = 0
    dropped: int = 0


class SyncStatus(BaseModel):
    last_sync: Optional[datetime] = None
    total_members: int = 0
    successful: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)
