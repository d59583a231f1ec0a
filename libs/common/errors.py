"""Error taxonomy shared by the bridge components.

EventValidationError  malformed inbound event; rejected, never retried.
TransientRemoteError  network / timeout / 5xx from backend or device.
PermanentRemoteError  a remote refused the request for good (4xx, tenancy).
PersistenceError      durable queue storage failed; always propagated.
"""

from typing import Optional


class BridgeError(Exception):
    """Base exception for the bridge."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class EventValidationError(BridgeError):
    status_code = 400


class PersistenceError(BridgeError):
    status_code = 500


class RemoteError(BridgeError):
    """A call to the backend or the device failed."""

    status_code = 502

    def __init__(
        self,
        message: str,
        *,
        service: str,
        remote_status: Optional[int] = None,
    ):
        self.service = service
        self.remote_status = remote_status
        super().__init__(message)


class TransientRemoteError(RemoteError):
    pass


class PermanentRemoteError(RemoteError):
    pass


class MemberNotFoundError(PermanentRemoteError):
    status_code = 404

    def __init__(self, member_id: int):
        self.member_id = member_id
        super().__init__("Member not found", service="backend", remote_status=404)


class WrongTenantError(PermanentRemoteError):
    status_code = 403

    def __init__(self, member_id: int, site_id: Optional[int]):
        self.member_id = member_id
        self.site_id = site_id
        super().__init__("Member does not belong to this site", service="backend")
