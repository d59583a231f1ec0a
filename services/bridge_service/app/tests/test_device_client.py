from datetime import datetime, timezone

import httpx
import pytest
from libs.common.errors import PermanentRemoteError, TransientRemoteError
from services.bridge_service.app.tests.stubs import (
    RoutingTransport,
    body_of,
    make_response,
)
from services.bridge_service.clients.device import DeviceClient, to_xml
from services.bridge_service.models import AccessDecision

SETUP = "/ISAPI/AccessControl/UserInfo/SetUp"
MODIFY = "/ISAPI/AccessControl/UserInfo/Modify"
RECORD = "/ISAPI/AccessControl/UserInfo/Record"
DELETE = "/ISAPI/AccessControl/UserInfo/Delete"
EVENTS = "/ISAPI/AccessControl/AcsEvent"

DECISION = AccessDecision(
    present=True,
    begin_time=datetime(2025, 1, 5, 9, 0, tzinfo=timezone.utc),
    end_time=datetime(2025, 1, 10, 23, 59, 59, 999000, tzinfo=timezone.utc),
)

OK = {"statusCode": 1, "statusString": "OK"}


def _client(transport: RoutingTransport, **overrides) -> DeviceClient:
    options = {
        "base_url": "http://device.test:80",
        "username": "admin",
        "password": "secret",
        "tz": timezone.utc,
        "auth_scheme": "basic",
        "transport": transport,
    }
    options.update(overrides)
    return DeviceClient(**options)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.contract
async def test_upsert_sends_validity_window_and_door_rights():
    transport = RoutingTransport({("PUT", SETUP): make_response(200, OK)})

    await _client(transport).upsert_user("42", "Ana", DECISION)

    request = transport.requests[0]
    assert request.url.params["format"] == "json"
    assert request.headers["Authorization"].startswith("Basic ")
    user = body_of(request)["UserInfo"]
    assert user["employeeNo"] == "42"
    assert user["name"] == "Ana"
    assert user["Valid"] == {
        "enable": True,
        "beginTime": "2025-01-05T09:00:00",
        "endTime": "2025-01-10T23:59:59",
        "timeType": "local",
    }
    assert user["RightPlan"] == [{"doorNo": 1, "planTemplateNo": "1"}]


@pytest.mark.asyncio
@pytest.mark.contract
async def test_upsert_falls_back_to_modify_on_older_firmware():
    transport = RoutingTransport(
        {
            ("PUT", SETUP): make_response(404),
            ("PUT", MODIFY): make_response(200, OK),
        }
    )

    await _client(transport).upsert_user("42", "Ana", DECISION)

    assert [r.url.path for r in transport.requests] == [SETUP, MODIFY]


@pytest.mark.asyncio
@pytest.mark.contract
async def test_upsert_creates_when_modify_finds_no_user():
    transport = RoutingTransport(
        {
            ("PUT", SETUP): make_response(405),
            ("PUT", MODIFY): make_response(400, {"subStatusCode": "employeeNoNotExist"}),
            ("POST", RECORD): make_response(200, OK),
        }
    )

    await _client(transport).upsert_user("42", "Ana", DECISION)

    assert [r.url.path for r in transport.requests] == [SETUP, MODIFY, RECORD]


@pytest.mark.asyncio
@pytest.mark.contract
async def test_upsert_rejected_by_device_is_permanent():
    transport = RoutingTransport(
        {("PUT", SETUP): make_response(400, {"subStatusCode": "badParameters"})}
    )

    with pytest.raises(PermanentRemoteError):
        await _client(transport).upsert_user("42", "Ana", DECISION)


@pytest.mark.asyncio
@pytest.mark.contract
async def test_delete_user():
    transport = RoutingTransport({("PUT", DELETE): make_response(200, OK)})

    assert await _client(transport).delete_user("42") is True
    assert body_of(transport.requests[0]) == {
        "UserInfoDelCond": {"EmployeeNoList": [{"employeeNo": "42"}]}
    }


@pytest.mark.asyncio
@pytest.mark.contract
@pytest.mark.parametrize(
    "response",
    [
        make_response(404),
        make_response(400, {"subStatusCode": "employeeNoNotExist"}),
        make_response(400, {"subStatusCode": "userNotExist"}),
    ],
)
async def test_delete_of_missing_user_is_not_an_error(response):
    transport = RoutingTransport({("PUT", DELETE): response})

    assert await _client(transport).delete_user("42") is False


@pytest.mark.asyncio
@pytest.mark.contract
async def test_delete_device_error_is_transient():
    transport = RoutingTransport({("PUT", DELETE): make_response(500)})

    with pytest.raises(TransientRemoteError):
        await _client(transport).delete_user("42")


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.contract
async def test_event_search_follows_more_pages():
    pages = iter(
        [
            {
                "AcsEvent": {
                    "responseStatusStrg": "MORE",
                    "numOfMatches": 2,
                    "InfoList": [{"employeeNoString": "1"}, {"employeeNoString": "2"}],
                }
            },
            {
                "AcsEvent": {
                    "responseStatusStrg": "OK",
                    "numOfMatches": 1,
                    "InfoList": [{"employeeNoString": "3"}],
                }
            },
        ]
    )
    transport = RoutingTransport(
        {("POST", EVENTS): lambda request: make_response(200, next(pages))}
    )
    start = datetime(2025, 1, 5, 8, 50, tzinfo=timezone.utc)
    end = datetime(2025, 1, 5, 9, 0, 30, 123456, tzinfo=timezone.utc)

    events = await _client(transport).query_events(start, end)

    assert [e["employeeNoString"] for e in events] == ["1", "2", "3"]
    first, second = (body_of(r)["AcsEventCond"] for r in transport.requests)
    assert first["searchResultPosition"] == 0
    assert second["searchResultPosition"] == 2
    assert first["searchID"] == second["searchID"]
    assert (first["major"], first["minor"]) == (5, 0)
    assert first["startTime"] == "2025-01-05T08:50:00+00:00"
    assert first["endTime"] == "2025-01-05T09:00:30+00:00"


@pytest.mark.asyncio
@pytest.mark.contract
async def test_event_search_with_no_matches():
    transport = RoutingTransport(
        {("POST", EVENTS): make_response(200, {"AcsEvent": {"responseStatusStrg": "NO MATCH"}})}
    )

    events = await _client(transport).query_events(
        datetime(2025, 1, 5, 8, 50, tzinfo=timezone.utc),
        datetime(2025, 1, 5, 9, 0, tzinfo=timezone.utc),
    )

    assert events == []


@pytest.mark.asyncio
@pytest.mark.contract
async def test_configure_event_push_registers_callback_and_arms_events():
    transport = RoutingTransport(
        {
            ("PUT", "/ISAPI/Event/notification/httpHosts"): make_response(200, OK),
            ("PUT", "/ISAPI/Event/notification/arming"): make_response(200, OK),
        }
    )

    await _client(transport).configure_event_push("http://bridge.local:3000/")

    hosts = body_of(transport.requests[0])["HttpHostNotificationList"]
    assert hosts["HttpHostNotification"][0]["url"] == (
        "http://bridge.local:3000/attendance/event"
    )
    assert len(transport.requests) == 2


# ---------------------------------------------------------------------------
# XML payloads
# ---------------------------------------------------------------------------


@pytest.mark.contract
def test_to_xml_repeats_list_items_and_renders_booleans():
    document = to_xml(
        {"UserInfo": {"employeeNo": "42", "Valid": {"enable": True}, "RightPlan": [{"doorNo": 1}, {"doorNo": 2}]}}
    )

    assert document.startswith('<?xml version="1.0" encoding="UTF-8"?>')
    assert "<employeeNo>42</employeeNo>" in document
    assert "<enable>true</enable>" in document
    assert document.count("<RightPlan>") == 2


@pytest.mark.asyncio
@pytest.mark.contract
async def test_xml_payload_format_sends_xml_body():
    transport = RoutingTransport({("PUT", SETUP): make_response(200, OK)})

    await _client(transport, payload_format="xml").upsert_user("42", "Ana", DECISION)

    request = transport.requests[0]
    assert request.headers["Content-Type"] == "application/xml"
    assert b"<employeeNo>42</employeeNo>" in request.content


@pytest.mark.asyncio
@pytest.mark.contract
async def test_unreachable_device_is_transient():
    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused")

    transport = RoutingTransport({("GET", "/ISAPI/System/deviceInfo"): refused})

    with pytest.raises(TransientRemoteError):
        await _client(transport).test_connection()


@pytest.mark.asyncio
@pytest.mark.contract
@pytest.mark.parametrize(
    "body",
    [[], {"AcsEvent": ["x"]}, {"AcsEvent": {"InfoList": "x"}}],
)
async def test_malformed_event_search_reply_is_transient(body):
    transport = RoutingTransport({("POST", EVENTS): make_response(200, body)})

    with pytest.raises(TransientRemoteError):
        await _client(transport).query_events(
            datetime(2025, 1, 5, 8, 50, tzinfo=timezone.utc),
            datetime(2025, 1, 5, 9, 0, tzinfo=timezone.utc),
        )
