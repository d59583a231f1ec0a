"""Apply a member's access decision to the device."""

from datetime import datetime, tzinfo
from typing import Callable, Protocol

from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.bridge_service.models import (
    AccessDecision,
    Member,
    ReconcileAction,
    ReconcileResult,
)
from services.bridge_service.services.validity import resolve

logger = get_logger(__name__)


class DeviceUsers(Protocol):
    async def upsert_user(
        self, employee_no: str, name: str, decision: AccessDecision
    ) -> None: ...

    async def delete_user(self, employee_no: str) -> bool: ...


def device_user_id(member: Member) -> str:
    """The identifier the device knows the member by."""
    return str(member.id)


class DeviceReconciler:
    """Upserts members who should have access and deletes the rest.

    Holds no state between calls; remote failures propagate to the caller.
    """

    def __init__(
        self,
        device: DeviceUsers,
        *,
        tz: tzinfo,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.device = device
        self.tz = tz
        self.clock = clock

    async def reconcile(self, member: Member) -> ReconcileResult:
        decision = resolve(member, self.clock(), self.tz)
        employee_no = device_user_id(member)

        if not decision.present:
            deleted = await self.device.delete_user(employee_no)
            if deleted:
                logger.info(f"Member {member.id} deleted from device (expired/blocked/inactive)")
                action = ReconcileAction.DELETED
            else:
                logger.debug(f"Member {member.id} already absent from device")
                action = ReconcileAction.SKIPPED
            return ReconcileResult(member_id=member.id, action=action, decision=decision)

        await self.device.upsert_user(employee_no, member.name, decision)
        logger.info(
            f"Member {member.id} synced to device",
            extra={
                "extra_fields": {
                    "member_name": member.name,
                    "end_time": decision.end_time.isoformat(),
                }
            },
        )
        return ReconcileResult(
            member_id=member.id, action=ReconcileAction.UPSERTED, decision=decision
        )
