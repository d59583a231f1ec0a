"""
Access-control device API client.

Provides async methods for:
- Checking the device is reachable
- Creating or overwriting a user with its validity window and door rights
- Deleting a user by employee number
- Searching the access event log for a time range
- Registering the push callback and arming access events

Authentication (digest or basic) and request body format (JSON or XML) are
settings of the client; responses are always requested as JSON.
"""

import uuid
import xml.etree.ElementTree as ET
from datetime import datetime, tzinfo
from typing import Any, List, Literal, Optional

import httpx
from libs.common.config import Settings
from libs.common.datetime_utils import (
    format_device_query_time,
    format_device_time,
    site_timezone,
)
from libs.common.errors import TransientRemoteError
from libs.common.logging import get_logger
from libs.common.service_client import ensure_success, remote_request
from services.bridge_service.models import AccessDecision

logger = get_logger(__name__)

SERVICE = "device"

# Access-control event category (major 5 = access events, minor 0 = all).
ACCESS_EVENT_MAJOR = 5
ACCESS_EVENT_MINOR = 0

EVENT_PAGE_SIZE = 100
MAX_EVENT_PAGES = 50

# Sub-status codes meaning "no such user" on delete.
_NOT_FOUND_CODES = {"employeeNoNotExist", "userNotExist", "noRecord"}


def to_xml(body: dict) -> str:
    """Render a single-rooted dict as an XML document.

    Lists repeat their key as sibling elements; booleans become true/false.
    """
    root_name, root_value = next(iter(body.items()))
    root = ET.Element(root_name)
    _fill(root, root_value)
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(
        root, encoding="unicode"
    )


def _fill(element: ET.Element, value: Any) -> None:
    if isinstance(value, dict):
        for key, child in value.items():
            if isinstance(child, list):
                for item in child:
                    _fill(ET.SubElement(element, key), item)
            else:
                _fill(ET.SubElement(element, key), child)
    elif isinstance(value, bool):
        element.text = "true" if value else "false"
    elif value is not None:
        element.text = str(value)


class DeviceClient:
    """Async client for the access-control device's HTTP control surface."""

    def __init__(
        self,
        *,
        base_url: str,
        username: str,
        password: str,
        tz: tzinfo,
        auth_scheme: Literal["digest", "basic"] = "digest",
        payload_format: Literal["json", "xml"] = "json",
        timeout: float = 10.0,
        door_no: int = 1,
        plan_template_no: str = "1",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.tz = tz
        self.payload_format = payload_format
        self.timeout = timeout
        self.door_no = door_no
        self.plan_template_no = plan_template_no
        self._transport = transport
        if auth_scheme == "basic":
            self._auth: httpx.Auth = httpx.BasicAuth(username, password)
        else:
            self._auth = httpx.DigestAuth(username, password)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DeviceClient":
        return cls(
            base_url=settings.device_base_url,
            username=settings.DEVICE_USERNAME,
            password=settings.DEVICE_PASSWORD,
            tz=site_timezone(settings.TIMEZONE),
            auth_scheme=settings.DEVICE_AUTH,
            payload_format=settings.DEVICE_PAYLOAD_FORMAT,
            timeout=settings.DEVICE_TIMEOUT,
            door_no=settings.DEVICE_DOOR_NO,
            plan_template_no=settings.DEVICE_PLAN_TEMPLATE_NO,
        )

    async def _request(
        self, method: str, path: str, body: Optional[dict] = None
    ) -> httpx.Response:
        headers = {}
        json_body = None
        content = None
        if body is not None:
            if self.payload_format == "xml":
                content = to_xml(body)
                headers["Content-Type"] = "application/xml"
            else:
                json_body = body

        return await remote_request(
            base_url=self.base_url,
            method=method,
            path=path,
            service=SERVICE,
            auth=self._auth,
            headers=headers,
            json=json_body,
            content=content,
            params={"format": "json"},
            timeout=self.timeout,
            transport=self._transport,
        )

    @staticmethod
    def _malformed(response: httpx.Response, what: str) -> TransientRemoteError:
        return TransientRemoteError(
            f"device returned {what} ({response.status_code})",
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

    # =========================================================================
    # System
    # =========================================================================

    async def test_connection(self) -> None:
        """Raise unless the device answers its info endpoint."""
        response = await self._request("GET", "/ISAPI/System/deviceInfo")
        ensure_success(response, service=SERVICE)

    # =========================================================================
    # Users
    # =========================================================================

    def user_payload(self, employee_no: str, name: str, decision: AccessDecision) -> dict:
        return {
            "UserInfo": {
                "employeeNo": employee_no,
                "name": name,
                "userType": "normal",
                "departmentNo": "1",
                "Valid": {
                    "enable": True,
                    "beginTime": format_device_time(decision.begin_time, self.tz),
                    "endTime": format_device_time(decision.end_time, self.tz),
                    "timeType": "local",
                },
                "doorRight": str(self.door_no),
                "RightPlan": [
                    {
                        "doorNo": self.door_no,
                        "planTemplateNo": self.plan_template_no,
                    }
                ],
            }
        }

    async def upsert_user(
        self, employee_no: str, name: str, decision: AccessDecision
    ) -> None:
        """Create the user or overwrite it; repeating the call is harmless."""
        payload = self.user_payload(employee_no, name, decision)
        response = await self._request(
            "PUT", "/ISAPI/AccessControl/UserInfo/SetUp", payload
        )
        if response.status_code in (404, 405):
            # Older firmware has no SetUp: modify, and create when that fails.
            response = await self._request(
                "PUT", "/ISAPI/AccessControl/UserInfo/Modify", payload
            )
            if not response.is_success:
                response = await self._request(
                    "POST", "/ISAPI/AccessControl/UserInfo/Record", payload
                )
        ensure_success(response, service=SERVICE)

    async def delete_user(self, employee_no: str) -> bool:
        """Delete a user. Returns False when the device did not have it."""
        response = await self._request(
            "PUT",
            "/ISAPI/AccessControl/UserInfo/Delete",
            {"UserInfoDelCond": {"EmployeeNoList": [{"employeeNo": employee_no}]}},
        )
        if response.status_code == 404 or self._is_not_found(response):
            return False
        ensure_success(response, service=SERVICE)
        return True

    def _is_not_found(self, response: httpx.Response) -> bool:
        if response.status_code != 400:
            return False
        try:
            body = response.json()
        except ValueError:
            return False
        return isinstance(body, dict) and body.get("subStatusCode") in _NOT_FOUND_CODES

    # =========================================================================
    # Events
    # =========================================================================

    async def query_events(self, start: datetime, end: datetime) -> List[dict]:
        """Access events recorded between ``start`` and ``end``, all pages."""
        search_id = uuid.uuid4().hex
        events: List[dict] = []
        position = 0

        for _ in range(MAX_EVENT_PAGES):
            response = await self._request(
                "POST",
                "/ISAPI/AccessControl/AcsEvent",
                {
                    "AcsEventCond": {
                        "searchID": search_id,
                        "searchResultPosition": position,
                        "maxResults": EVENT_PAGE_SIZE,
                        "major": ACCESS_EVENT_MAJOR,
                        "minor": ACCESS_EVENT_MINOR,
                        "startTime": format_device_query_time(start, self.tz),
                        "endTime": format_device_query_time(end, self.tz),
                    }
                },
            )
            ensure_success(response, service=SERVICE)
            result = self._json(response).get("AcsEvent") or {}
            if not isinstance(result, dict) or not isinstance(
                result.get("InfoList") or [], list
            ):
                raise self._malformed(response, "a malformed event search result")
            page = result.get("InfoList") or []
            events.extend(page)

            if result.get("responseStatusStrg") != "MORE" or not page:
                break
            try:
                position += int(result.get("numOfMatches") or len(page))
            except (TypeError, ValueError) as e:
                raise self._malformed(response, "a malformed match count") from e
        else:
            logger.warning(
                f"Event search stopped after {MAX_EVENT_PAGES} pages; "
                f"{len(events)} events returned"
            )

        logger.info(f"Retrieved {len(events)} access events from device")
        return events

    async def configure_event_push(self, callback_url: str) -> None:
        """Point the device's HTTP push at ``callback_url`` and arm access events."""
        callback_url = callback_url.rstrip("/")
        response = await self._request(
            "PUT",
            "/ISAPI/Event/notification/httpHosts",
            {
                "HttpHostNotificationList": {
                    "HttpHostNotification": [
                        {
                            "id": 1,
                            "url": f"{callback_url}/attendance/event",
                            "protocolType": "HTTP",
                            "parameterFormatType": "JSON",
                            "addressingFormatType": "ipaddress",
                            "httpAuthenticationMethod": "none",
                        }
                    ]
                }
            },
        )
        ensure_success(response, service=SERVICE)

        response = await self._request(
            "PUT",
            "/ISAPI/Event/notification/arming",
            {
                "EventNotificationArming": {
                    "id": 1,
                    "EventNotificationArmingList": {
                        "EventNotificationArming": [
                            {
                                "id": 1,
                                "enabled": True,
                                "EventTypeList": {
                                    "EventType": [
                                        {
                                            "major": ACCESS_EVENT_MAJOR,
                                            "minor": ACCESS_EVENT_MINOR,
                                        }
                                    ]
                                },
                            }
                        ]
                    },
                }
            },
        )
        ensure_success(response, service=SERVICE)
        logger.info(f"Event push configured on device: {callback_url}")
