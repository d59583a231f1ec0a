"""Unit tests for the attendance ingestor: event shapes, fallback, pull."""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest
from libs.common.errors import EventValidationError, PersistenceError
from services.bridge_service.models import IngestOutcome
from services.bridge_service.schemas.events import parse_device_event
from services.bridge_service.services.durable_queue import (
    DurableQueue,
    FileRecordStore,
)
from services.bridge_service.services.ingestor import AttendanceIngestor
from tests.factories import backend_answering

# ---------------------------------------------------------------------------
# Event shapes
# ---------------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.parametrize(
    "raw",
    [
        {"employeeNo": "42", "time": "2025-01-05T08:00:00Z"},
        {"employeeNo": 42, "time": "2025-01-05T08:00:00+00:00"},
        {"AcsEvent": {"employeeNo": "42", "time": "2025-01-05T08:00:00Z"}},
        {"AcsEvent": {"employeeNoString": "42"}, "time": "2025-01-05T08:00:00Z"},
        {
            "dateTime": "2025-01-05T08:00:00Z",
            "AccessControllerEvent": {"employeeNoString": "42"},
        },
    ],
)
def test_every_known_event_shape_parses_to_the_same_event(raw):
    event = parse_device_event(raw)

    assert event.member_id == 42
    assert event.occurred_at == datetime(2025, 1, 5, 8, 0, tzinfo=timezone.utc)


@pytest.mark.unit
@pytest.mark.parametrize(
    "raw",
    [
        {},
        {"time": "2025-01-05T08:00:00Z"},
        {"employeeNo": "42"},
        {"employeeNo": "", "time": "2025-01-05T08:00:00Z"},
        {"employeeNo": "abc", "time": "2025-01-05T08:00:00Z"},
        {"employeeNo": "42", "time": "yesterday"},
        {"AcsEvent": "garbage"},
        ["not", "an", "object"],
        "plain text",
        None,
    ],
)
def test_malformed_events_are_rejected(raw):
    with pytest.raises(EventValidationError):
        parse_device_event(raw)


# ---------------------------------------------------------------------------
# ingest
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_event_is_delivered_immediately_when_backend_is_up(
    ingestor, backend, queue
):
    result = await ingestor.ingest({"employeeNo": "42", "time": "2025-01-05T08:00:00Z"})

    assert result.outcome is IngestOutcome.DELIVERED
    assert queue.size() == 0
    record = backend.attendance[0]
    assert (record.member_id, record.site_id) == (42, 7)
    assert record.date == date(2025, 1, 5)
    assert record.check_in == "08:00:00"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_rejected_event_has_no_side_effects(ingestor, backend, queue):
    result = await ingestor.ingest({"time": "2025-01-05T08:00:00Z"})

    assert result.outcome is IngestOutcome.REJECTED
    assert result.reason == "Invalid event data"
    assert backend.attendance_calls == 0
    assert queue.size() == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_backend_outage_queues_event_and_sweep_delivers_it(
    ingestor, backend, queue, retrier
):
    backend.down = True

    result = await ingestor.ingest({"employeeNo": "42", "time": "2025-01-05T08:00:00Z"})

    assert result.outcome is IngestOutcome.QUEUED
    assert [item.id for item in queue.list_all()] == [result.queue_id]

    backend.down = False
    await retrier.sweep()

    assert queue.size() == 0
    assert len(backend.attendance) == 1
    assert backend.attendance[0].member_id == 42
    assert backend.attendance[0].date == date(2025, 1, 5)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_malformed_backend_reply_queues_the_event(queue, device, clock):
    ingestor = AttendanceIngestor(
        backend_answering([]),
        queue,
        device,
        site_id=7,
        tz=timezone.utc,
        clock=clock,
    )

    result = await ingestor.ingest({"employeeNo": "42", "time": "2025-01-05T08:00:00Z"})

    assert result.outcome is IngestOutcome.QUEUED
    assert [item.id for item in queue.list_all()] == [result.queue_id]
    assert queue.get(result.queue_id).payload["member_id"] == 42


@pytest.mark.asyncio
@pytest.mark.unit
async def test_queue_failure_during_fallback_propagates(backend, device, clock, tmp_path):
    class FullDiskStore(FileRecordStore):
        def put(self, key, data):
            raise PersistenceError("disk full")

    ingestor = AttendanceIngestor(
        backend,
        DurableQueue(FullDiskStore(tmp_path / "queue"), clock=clock),
        device,
        site_id=7,
        tz=timezone.utc,
        clock=clock,
    )
    backend.down = True

    with pytest.raises(PersistenceError):
        await ingestor.ingest({"employeeNo": "42", "time": "2025-01-05T08:00:00Z"})


@pytest.mark.asyncio
@pytest.mark.unit
async def test_attendance_date_follows_the_site_calendar(backend, queue, device, clock):
    ingestor = AttendanceIngestor(
        backend,
        queue,
        device,
        site_id=7,
        tz=ZoneInfo("America/New_York"),
        clock=clock,
    )

    await ingestor.ingest({"employeeNo": "42", "time": "2025-01-05T02:30:00Z"})

    assert backend.attendance[0].date == date(2025, 1, 4)
    assert backend.attendance[0].check_in == "21:30:00"


# ---------------------------------------------------------------------------
# pull_recent
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_pull_queries_the_last_ten_minutes(ingestor, device, clock):
    await ingestor.pull_recent()

    start, end = device.event_queries[0]
    assert end == clock()
    assert end - start == timedelta(minutes=10)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_pull_continues_past_bad_events_and_tallies(ingestor, device, backend):
    device.events = [
        {"employeeNoString": "42", "time": "2025-01-05T08:00:00Z"},
        {"employeeNoString": "", "time": "2025-01-05T08:01:00Z"},
        {"employeeNoString": "43", "time": "2025-01-05T08:02:00Z"},
    ]

    summary = await ingestor.pull_recent()

    assert summary.total == 3
    assert summary.successful == 2
    assert summary.queued == 0
    assert summary.failed == 1
    assert len(summary.errors) == 1
    assert {r.member_id for r in backend.attendance} == {42, 43}


@pytest.mark.asyncio
@pytest.mark.unit
async def test_pull_during_backend_outage_queues_every_event(
    ingestor, device, backend, queue
):
    device.events = [
        {"employeeNoString": "42", "time": "2025-01-05T08:00:00Z"},
        {"employeeNoString": "43", "time": "2025-01-05T08:02:00Z"},
    ]
    backend.down = True

    summary = await ingestor.pull_recent()

    assert summary.queued == 2
    assert summary.failed == 0
    assert queue.size() == 2


@pytest.mark.asyncio
@pytest.mark.unit
async def test_pull_queues_events_the_backend_answers_malformed(queue, device, clock):
    ingestor = AttendanceIngestor(
        backend_answering({"data": [{"checkIn": "08:00:00"}]}),
        queue,
        device,
        site_id=7,
        tz=timezone.utc,
        clock=clock,
    )
    device.events = [
        {"employeeNoString": "42", "time": "2025-01-05T08:00:00Z"},
        {"employeeNoString": "43", "time": "2025-01-05T08:02:00Z"},
    ]

    summary = await ingestor.pull_recent()

    assert summary.queued == 2
    assert summary.failed == 0
    assert queue.size() == 2
