"""Scheduled bridge jobs: member sync, attendance pull, queue retry.

Remote outages are expected and only logged; the next tick runs the job
again. Queue persistence failures are not caught here.
"""

from typing import Optional

from libs.common.errors import RemoteError
from libs.common.logging import get_logger
from services.bridge_service.models import PullSummary, SweepSummary, SyncSummary
from services.bridge_service.services.ingestor import AttendanceIngestor
from services.bridge_service.services.orchestrator import SyncOrchestrator
from services.bridge_service.services.retrier import DeliveryRetrier

logger = get_logger(__name__)


async def sync_members(orchestrator: SyncOrchestrator) -> Optional[SyncSummary]:
    """Reconcile the whole site onto the device."""
    try:
        return await orchestrator.sync_all()
    except RemoteError as e:
        logger.error(f"Member sync job failed: {e.message}")
        return None


async def pull_attendance(ingestor: AttendanceIngestor) -> Optional[PullSummary]:
    """Ingest the device's recent access events."""
    try:
        return await ingestor.pull_recent()
    except RemoteError as e:
        logger.error(f"Attendance pull job failed: {e.message}")
        return None


async def retry_queue(retrier: DeliveryRetrier) -> SweepSummary:
    """Drain the durable queue once."""
    return await retrier.sweep()
