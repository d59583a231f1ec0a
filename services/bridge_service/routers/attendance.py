from typing import Any

from fastapi import APIRouter, Body, Depends
from libs.common.errors import EventValidationError
from libs.common.logging import get_logger
from services.bridge_service.dependencies import (
    get_attendance_ingestor,
    get_durable_queue,
)
from services.bridge_service.models import IngestOutcome
from services.bridge_service.schemas import (
    ClearQueueResponse,
    IngestResponse,
    PullResponse,
    QueueResponse,
)
from services.bridge_service.services.durable_queue import DurableQueue
from services.bridge_service.services.ingestor import AttendanceIngestor

router = APIRouter(prefix="/attendance", tags=["attendance"])
logger = get_logger(__name__)


@router.post("/event", response_model=IngestResponse)
async def handle_attendance_event(
    event: Any = Body(...),
    ingestor: AttendanceIngestor = Depends(get_attendance_ingestor),
):
    """
    Webhook for access events pushed by the device (nested or flat shape).
    """
    logger.info("Received attendance event from device", extra={"extra_fields": {"event": event}})
    result = await ingestor.ingest(event)

    if result.outcome is IngestOutcome.REJECTED:
        raise EventValidationError(result.reason or "Invalid event data")

    return IngestResponse(
        queued=result.outcome is IngestOutcome.QUEUED,
        queue_id=result.queue_id,
    )


@router.post("/pull", response_model=PullResponse)
async def pull_attendance_logs(
    ingestor: AttendanceIngestor = Depends(get_attendance_ingestor),
):
    """
    Pull the device's event log for the recent window and ingest every event.
    """
    logger.info("Manually pulling attendance logs...")
    results = await ingestor.pull_recent()
    return PullResponse(
        message=f"Processed {results.successful} logs, queued {results.queued}",
        results=results,
    )


@router.get("/queue", response_model=QueueResponse)
async def get_queued_attendance(queue: DurableQueue = Depends(get_durable_queue)):
    """
    List events waiting for delivery (diagnostic).
    """
    items = queue.list_all()
    return QueueResponse(queue_size=len(items), items=items)


@router.delete("/queue", response_model=ClearQueueResponse)
async def clear_queued_attendance(queue: DurableQueue = Depends(get_durable_queue)):
    """
    Drop every queued event (diagnostic). The events are lost.
    """
    removed = queue.clear()
    logger.warning(f"Queue cleared through the API: {removed} events discarded")
    return ClearQueueResponse(removed=removed)
