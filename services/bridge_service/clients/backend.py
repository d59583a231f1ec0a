"""
Backend (membership / attendance store) API client.

Provides async methods for:
- Authenticating with an API token or an email/password exchange
- Listing the members of the configured site (paginated)
- Fetching a single member
- Creating or updating the attendance record of a member for a day
"""

from typing import Any, List, Optional

import httpx
from libs.common.config import Settings
from libs.common.errors import PermanentRemoteError, TransientRemoteError
from libs.common.logging import get_logger
from libs.common.service_client import ensure_success, remote_request
from services.bridge_service.models import AttendanceRecord

logger = get_logger(__name__)

SERVICE = "backend"


class BackendClient:
    """Async client for the membership backend's REST API."""

    def __init__(
        self,
        *,
        base_url: str,
        site_id: int,
        api_token: Optional[str] = None,
        email: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = 15.0,
        page_size: int = 100,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.site_id = site_id
        self.timeout = timeout
        self.page_size = page_size
        self._api_token = api_token
        self._email = email
        self._password = password
        self._transport = transport
        self._jwt: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "BackendClient":
        return cls(
            base_url=settings.BACKEND_URL,
            site_id=settings.SITE_ID,
            api_token=settings.BACKEND_API_TOKEN,
            email=settings.BACKEND_EMAIL,
            password=settings.BACKEND_PASSWORD,
            timeout=settings.BACKEND_TIMEOUT,
            page_size=settings.BACKEND_PAGE_SIZE,
        )

    # =========================================================================
    # Transport
    # =========================================================================

    async def authenticate(self) -> None:
        """Obtain the bearer token used for every backend call."""
        if self._api_token:
            self._jwt = self._api_token
            logger.info("Authenticated with backend using API token")
            return

        if not (self._email and self._password):
            raise PermanentRemoteError(
                "No backend authentication method configured", service=SERVICE
            )

        response = await remote_request(
            base_url=self.base_url,
            method="POST",
            path="/api/auth/local",
            service=SERVICE,
            json={"identifier": self._email, "password": self._password},
            timeout=self.timeout,
            transport=self._transport,
        )
        ensure_success(response, service=SERVICE)
        jwt = self._json(response).get("jwt")
        if not jwt:
            raise PermanentRemoteError(
                "Backend login response carried no token", service=SERVICE
            )
        self._jwt = jwt
        logger.info("Authenticated with backend using email/password")

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict] = None,
        json: Any = None,
        allow: tuple[int, ...] = (),
    ) -> httpx.Response:
        if not self._jwt:
            await self.authenticate()

        response = await self._send(method, path, params=params, json=json)
        if response.status_code == 401 and not self._api_token:
            # Session token expired; log in again once.
            logger.info("Backend token rejected, re-authenticating")
            self._jwt = None
            await self.authenticate()
            response = await self._send(method, path, params=params, json=json)

        return ensure_success(response, service=SERVICE, allow=allow)

    async def _send(
        self, method: str, path: str, *, params: Optional[dict], json: Any
    ) -> httpx.Response:
        return await remote_request(
            base_url=self.base_url,
            method=method,
            path=path,
            service=SERVICE,
            headers={"Authorization": f"Bearer {self._jwt}"},
            params=params,
            json=json,
            timeout=self.timeout,
            transport=self._transport,
        )

    @staticmethod
    def _malformed(response: httpx.Response, what: str) -> TransientRemoteError:
        return TransientRemoteError(
            f"backend returned {what} ({response.status_code})",
            service=SERVICE,
            remote_status=response.status_code,
        )

    @classmethod
    def _json(cls, response: httpx.Response) -> dict:
        """The response body as a JSON object; anything else is a remote failure."""
        try:
            body = response.json()
        except ValueError as e:
            raise cls._malformed(response, "a non-JSON body") from e
        if not isinstance(body, dict):
            raise cls._malformed(response, f"a JSON {type(body).__name__}, not an object")
        return body

    @classmethod
    def _data_list(cls, response: httpx.Response) -> List[dict]:
        """The ``data`` array of a collection response, entries checked."""
        data = cls._json(response).get("data")
        if data is None:
            return []
        if not isinstance(data, list) or not all(isinstance(d, dict) for d in data):
            raise cls._malformed(response, "a malformed data array")
        return data

    # =========================================================================
    # Site / members
    # =========================================================================

    async def test_connection(self) -> None:
        """Raise unless the backend answers for the configured site."""
        await self._request("GET", f"/api/gyms/{self.site_id}")

    async def list_members(self) -> List[dict]:
        """Every member record of the configured site, all pages."""
        members: List[dict] = []
        page = 1
        while True:
            response = await self._request(
                "GET",
                "/api/members",
                params={
                    "filters[gym][id][$eq]": self.site_id,
                    "populate": "gym",
                    "pagination[page]": page,
                    "pagination[pageSize]": self.page_size,
                },
            )
            members.extend(self._data_list(response))

            meta = self._json(response).get("meta")
            pagination = (meta.get("pagination") if isinstance(meta, dict) else None) or {}
            try:
                page_count = int(pagination.get("pageCount") or 1)
            except (AttributeError, TypeError, ValueError) as e:
                raise self._malformed(response, "malformed pagination") from e
            if page >= page_count:
                break
            page += 1

        logger.info(f"Retrieved {len(members)} members from backend")
        return members

    async def get_member(self, member_id: int) -> Optional[dict]:
        """Fetch one member record, or None if the backend does not know it."""
        response = await self._request(
            "GET",
            f"/api/members/{member_id}",
            params={"populate": "gym"},
            allow=(404,),
        )
        if response.status_code == 404:
            return None
        return self._json(response).get("data")

    # =========================================================================
    # Attendance
    # =========================================================================

    async def upsert_attendance(self, record: AttendanceRecord) -> str:
        """Create the member's attendance for the day, or update its checkout.

        Returns "created" or "updated".
        """
        date_str = record.date.isoformat()
        response = await self._request(
            "GET",
            "/api/attendances",
            params={
                "filters[member][id][$eq]": record.member_id,
                "filters[date][$eq]": date_str,
            },
        )
        matches = self._data_list(response)
        existing = matches[0] if matches else None
        if existing is not None and existing.get("id") is None:
            raise self._malformed(response, "an attendance entry without an id")

        if existing:
            await self._request(
                "PUT",
                f"/api/attendances/{existing['id']}",
                json={"data": {"checkOut": record.check_out or record.check_in}},
            )
            logger.info(f"Updated attendance for member {record.member_id} on {date_str}")
            return "updated"

        await self._request(
            "POST",
            "/api/attendances",
            json={
                "data": {
                    "member": record.member_id,
                    "gym": record.site_id,
                    "date": date_str,
                    "checkIn": record.check_in,
                    "checkOut": record.check_out,
                }
            },
        )
        logger.info(f"Created attendance for member {record.member_id} on {date_str}")
        return "created"
