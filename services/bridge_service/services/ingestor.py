"""Turn device access events into attendance records and deliver them.

Delivery is attempted immediately; when the backend fails for any reason the
record goes to the durable queue, so an outage never loses an event as long
as the queue itself can persist it.
"""

import asyncio
from datetime import datetime, timedelta, tzinfo
from typing import Any, Callable, List, Optional, Protocol

from libs.common.datetime_utils import to_site_time, utc_now
from libs.common.errors import EventValidationError, PersistenceError, RemoteError
from libs.common.logging import get_logger
from services.bridge_service.models import (
    AttendanceRecord,
    IngestOutcome,
    IngestResult,
    PullSummary,
    QueueItemType,
)
from services.bridge_service.schemas.events import DeviceEvent, parse_device_event
from services.bridge_service.services.durable_queue import DurableQueue

logger = get_logger(__name__)

DEFAULT_PULL_WINDOW = timedelta(minutes=10)


class AttendanceSink(Protocol):
    async def upsert_attendance(self, record: AttendanceRecord) -> str: ...


class EventSource(Protocol):
    async def query_events(self, start: datetime, end: datetime) -> List[dict]: ...


def _employee_label(raw: Any) -> str:
    if isinstance(raw, dict):
        return str(raw.get("employeeNoString") or raw.get("employeeNo") or "unknown")
    return "unknown"


class AttendanceIngestor:
    def __init__(
        self,
        backend: AttendanceSink,
        queue: DurableQueue,
        device: EventSource,
        *,
        site_id: int,
        tz: tzinfo,
        clock: Callable[[], datetime] = utc_now,
        pull_window: timedelta = DEFAULT_PULL_WINDOW,
    ):
        self.backend = backend
        self.queue = queue
        self.device = device
        self.site_id = site_id
        self.tz = tz
        self.clock = clock
        self.pull_window = pull_window
        self._pull_lock = asyncio.Lock()

    def normalize(self, event: DeviceEvent) -> AttendanceRecord:
        """Split the event time into the site-local day and time of day."""
        local = to_site_time(event.occurred_at, self.tz)
        return AttendanceRecord(
            member_id=event.member_id,
            site_id=self.site_id,
            date=local.date(),
            check_in=local.strftime("%H:%M:%S"),
        )

    async def ingest(self, raw_event: Any) -> IngestResult:
        """Deliver one raw device event, queueing it if the backend fails.

        Raises PersistenceError if the fallback enqueue cannot be stored.
        """
        try:
            event = parse_device_event(raw_event)
        except EventValidationError as e:
            logger.warning(f"Rejected device event: {e.message}")
            return IngestResult(outcome=IngestOutcome.REJECTED, reason=e.message)

        record = self.normalize(event)
        try:
            await self.backend.upsert_attendance(record)
        except RemoteError as e:
            logger.warning(
                f"Backend unreachable, queueing attendance for member {record.member_id}: {e.message}"
            )
            queue_id = self.queue.enqueue(
                QueueItemType.ATTENDANCE, record.model_dump(mode="json")
            )
            return IngestResult(
                outcome=IngestOutcome.QUEUED, queue_id=queue_id, record=record
            )

        logger.info(f"Attendance logged for member {record.member_id} on {record.date}")
        return IngestResult(outcome=IngestOutcome.DELIVERED, record=record)

    async def pull_recent(self, window: Optional[timedelta] = None) -> PullSummary:
        """Pull the device's recent event log and ingest each event.

        A device failure while listing events propagates; failures of single
        events are counted and the pull carries on.
        """
        async with self._pull_lock:
            end = self.clock()
            start = end - (window or self.pull_window)
            events = await self.device.query_events(start, end)

            summary = PullSummary(total=len(events))
            for raw in events:
                label = _employee_label(raw)
                try:
                    result = await self.ingest(raw)
                except PersistenceError as e:
                    logger.critical(
                        f"Attendance for employee {label} could not be queued: {e.message}"
                    )
                    summary.failed += 1
                    summary.add_error(f"Employee {label}: {e.message}")
                    continue

                if result.outcome is IngestOutcome.DELIVERED:
                    summary.successful += 1
                elif result.outcome is IngestOutcome.QUEUED:
                    summary.queued += 1
                else:
                    summary.failed += 1
                    summary.add_error(f"Employee {label}: {result.reason}")

            logger.info(
                "Attendance pull completed",
                extra={"extra_fields": summary.model_dump(exclude={"errors"})},
            )
            return summary
