"""Drive the device reconciler over the site's membership."""

import asyncio
from datetime import datetime
from typing import Callable, List, Optional, Protocol

from libs.common.datetime_utils import utc_now
from libs.common.errors import (
    MemberNotFoundError,
    PermanentRemoteError,
    RemoteError,
    WrongTenantError,
)
from libs.common.logging import get_logger
from services.bridge_service.models import (
    Member,
    ReconcileResult,
    SyncStatus,
    SyncSummary,
)
from services.bridge_service.services.reconciler import DeviceReconciler

logger = get_logger(__name__)


class MemberSource(Protocol):
    async def list_members(self) -> List[dict]: ...

    async def get_member(self, member_id: int) -> Optional[dict]: ...


class SyncStatusCell:
    """Holds the summary of the most recent full sync."""

    def __init__(self, initial: Optional[SyncStatus] = None):
        self._status = initial or SyncStatus()

    def get(self) -> SyncStatus:
        return self._status.model_copy(deep=True)

    def set(self, status: SyncStatus) -> None:
        self._status = status


class SyncOrchestrator:
    """Reapplies the membership of one site to the device.

    No retry queue: a member that fails now is simply reconciled again on the
    next scheduled pass.
    """

    def __init__(
        self,
        backend: MemberSource,
        reconciler: DeviceReconciler,
        status_cell: SyncStatusCell,
        *,
        site_id: int,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.backend = backend
        self.reconciler = reconciler
        self.status_cell = status_cell
        self.site_id = site_id
        self.clock = clock
        self._lock = asyncio.Lock()

    async def sync_all(self) -> SyncSummary:
        """Reconcile every member of the site; one failure never stops the batch.

        Raises if the member list itself cannot be fetched, leaving the last
        recorded status untouched.
        """
        async with self._lock:
            logger.info("Starting member sync...")
            raw_members = await self.backend.list_members()

            summary = SyncSummary(total=len(raw_members))
            for raw in raw_members:
                error = await self._sync_record(raw)
                if error is None:
                    summary.successful += 1
                else:
                    summary.failed += 1
                    summary.add_error(error)

            self.status_cell.set(
                SyncStatus(
                    last_sync=self.clock(),
                    total_members=summary.total,
                    successful=summary.successful,
                    failed=summary.failed,
                    errors=list(summary.errors),
                )
            )
            logger.info(
                "Member sync completed",
                extra={"extra_fields": summary.model_dump(exclude={"errors"})},
            )
            return summary

    async def _sync_record(self, raw: dict) -> Optional[str]:
        member_id = raw.get("id", "?") if isinstance(raw, dict) else "?"
        try:
            member = Member.from_backend(raw)
            await self.reconciler.reconcile(member)
        except RemoteError as e:
            logger.error(f"Failed to sync member {member_id}: {e.message}")
            return f"Member {member_id}: {e.message}"
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Skipping malformed member record {member_id}: {e}")
            return f"Member {member_id}: invalid member record"
        return None

    async def sync_one(self, member_id: int) -> ReconcileResult:
        """Reconcile a single member after checking it belongs to this site."""
        logger.info(f"Syncing member {member_id}...")
        raw = await self.backend.get_member(member_id)
        if raw is None:
            raise MemberNotFoundError(member_id)

        try:
            member = Member.from_backend(raw)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise PermanentRemoteError(
                f"Backend returned an invalid record for member {member_id}",
                service="backend",
            ) from e

        if member.site_id != self.site_id:
            raise WrongTenantError(member_id, member.site_id)

        result = await self.reconciler.reconcile(member)
        logger.info(f"Member {member_id} synced successfully ({result.action.value})")
        return result
