from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel
from services.bridge_service.models import (
    PullSummary,
    QueueItem,
    ReconcileAction,
    SyncStatus,
    SyncSummary,
)


class IngestResponse(BaseModel):
    success: bool = True
    queued: bool = False
    queue_id: Optional[str] = None


class PullResponse(BaseModel):
    success: bool = True
    message: str
    results: PullSummary


class QueueResponse(BaseModel):
    success: bool = True
    queue_size: int
    items: List[QueueItem]


class ClearQueueResponse(BaseModel):
    success: bool = True
    removed: int


class SyncAllResponse(BaseModel):
    success: bool = True
    message: str
    results: SyncSummary


class SyncOneResponse(BaseModel):
    success: bool = True
    message: str
    action: ReconcileAction
    access: bool
    begin_time: datetime
    end_time: datetime


class SyncStatusResponse(BaseModel):
    success: bool = True
    status: SyncStatus


class ServiceCheck(BaseModel):
    status: Literal["healthy", "unhealthy"]
    error: Optional[str] = None


class QueueHealth(BaseModel):
    size: Optional[int] = None
    error: Optional[str] = None


class HealthResponse(BaseModel):
    """Aggregate health.

    degraded: a remote is unreachable but events are still being queued.
    unhealthy: the durable queue itself is failing.
    """

    status: Literal["healthy", "degraded", "unhealthy"]
    timestamp: datetime
    uptime_seconds: float
    config: Dict[str, object]
    services: Dict[str, ServiceCheck]
    queue: QueueHealth


class EventPushRequest(BaseModel):
    callback_url: Optional[str] = None


class EventPushResponse(BaseModel):
    success: bool = True
    callback_url: str
