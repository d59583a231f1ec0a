"""Drain the durable queue against the backend with a bounded retry budget."""

import asyncio
from typing import Any, Awaitable, Callable, Dict

from libs.common.errors import RemoteError
from libs.common.logging import get_logger
from services.bridge_service.models import (
    AttendanceRecord,
    QueueItem,
    QueueItemType,
    SweepSummary,
)
from services.bridge_service.services.durable_queue import DurableQueue
from services.bridge_service.services.ingestor import AttendanceSink

logger = get_logger(__name__)

# Give-up threshold: an item is dropped when its retry count reaches this.
MAX_RETRIES = 10


class DeliveryRetrier:
    def __init__(
        self,
        queue: DurableQueue,
        backend: AttendanceSink,
        *,
        max_retries: int = MAX_RETRIES,
    ):
        self.queue = queue
        self.backend = backend
        self.max_retries = max_retries
        self._lock = asyncio.Lock()
        self._handlers: Dict[str, Callable[[dict[str, Any]], Awaitable[None]]] = {
            QueueItemType.ATTENDANCE.value: self._deliver_attendance,
        }

    async def sweep(self) -> SweepSummary:
        """Try every queued item once, oldest first.

        Queue storage failures propagate; delivery failures only count
        against the item's retry budget.
        """
        async with self._lock:
            summary = SweepSummary()
            items = self.queue.list_all()
            if not items:
                return summary

            logger.info(f"Processing {len(items)} queued items...")
            for item in items:
                summary.processed += 1
                try:
                    await self._deliver(item)
                except (RemoteError, ValueError) as e:
                    self._record_failure(item, e, summary)
                    continue

                self.queue.remove(item.id)
                summary.delivered += 1
                logger.info(f"Queued {item.type} delivered: {item.id}")

            logger.info(
                "Queue retry sweep completed",
                extra={"extra_fields": summary.model_dump()},
            )
            return summary

    async def _deliver(self, item: QueueItem) -> None:
        handler = self._handlers.get(item.type)
        if handler is None:
            raise ValueError(f"No delivery handler for item type {item.type!r}")
        await handler(item.payload)

    async def _deliver_attendance(self, payload: dict[str, Any]) -> None:
        record = AttendanceRecord.model_validate(payload)
        await self.backend.upsert_attendance(record)

    def _record_failure(
        self, item: QueueItem, error: Exception, summary: SweepSummary
    ) -> None:
        reason = getattr(error, "message", None) or str(error)
        new_count = item.retry_count + 1

        if new_count >= self.max_retries:
            self.queue.remove(item.id)
            summary.dropped += 1
            logger.error(
                f"Queued item {item.id} permanently dropped after {new_count} failed deliveries: {reason}",
                extra={"extra_fields": {"item_type": item.type, "payload": item.payload}},
            )
            return

        self.queue.update_retry_count(item.id, new_count)
        summary.retried += 1
        logger.warning(
            f"Queued item {item.id} delivery failed ({new_count}/{self.max_retries}): {reason}"
        )
