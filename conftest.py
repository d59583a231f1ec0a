import os
import tempfile
from datetime import datetime, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Settings are required at import time; tests never talk to real collaborators.
os.environ.setdefault("ENVIRONMENT", "local")
os.environ.setdefault("TIMEZONE", "UTC")
os.environ.setdefault("SITE_ID", "7")
os.environ.setdefault("BACKEND_URL", "http://backend.test")
os.environ.setdefault("BACKEND_API_TOKEN", "test-token")
os.environ.setdefault("DEVICE_HOST", "device.test")
os.environ.setdefault("DEVICE_USERNAME", "admin")
os.environ.setdefault("DEVICE_PASSWORD", "secret")
os.environ.setdefault("QUEUE_DIR", tempfile.mkdtemp(prefix="bridge-queue-"))

from libs.common.config import get_settings  # noqa: E402

# Clear cached settings to reload with the env vars above
get_settings.cache_clear()

from libs.common.datetime_utils import site_timezone  # noqa: E402
from services.bridge_service import dependencies  # noqa: E402
from services.bridge_service.app.main import app  # noqa: E402
from services.bridge_service.services.durable_queue import (  # noqa: E402
    DurableQueue,
    FileRecordStore,
)
from services.bridge_service.services.ingestor import AttendanceIngestor  # noqa: E402
from services.bridge_service.services.orchestrator import (  # noqa: E402
    SyncOrchestrator,
    SyncStatusCell,
)
from services.bridge_service.services.reconciler import DeviceReconciler  # noqa: E402
from services.bridge_service.services.retrier import DeliveryRetrier  # noqa: E402
from tests.factories import FakeBackend, FakeDevice, FixedClock  # noqa: E402

SITE_ID = 7
UTC = site_timezone("UTC")


@pytest.fixture
def clock() -> FixedClock:
    """Frozen at 2025-01-05 09:00 UTC unless a test moves it."""
    return FixedClock(datetime(2025, 1, 5, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def queue(tmp_path, clock) -> DurableQueue:
    return DurableQueue(FileRecordStore(tmp_path / "queue"), clock=clock)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend(site_id=SITE_ID)


@pytest.fixture
def device() -> FakeDevice:
    return FakeDevice()


@pytest.fixture
def reconciler(device, clock) -> DeviceReconciler:
    return DeviceReconciler(device, tz=UTC, clock=clock)


@pytest.fixture
def status_cell() -> SyncStatusCell:
    return SyncStatusCell()


@pytest.fixture
def orchestrator(backend, reconciler, status_cell, clock) -> SyncOrchestrator:
    return SyncOrchestrator(
        backend, reconciler, status_cell, site_id=SITE_ID, clock=clock
    )


@pytest.fixture
def ingestor(backend, queue, device, clock) -> AttendanceIngestor:
    return AttendanceIngestor(
        backend, queue, device, site_id=SITE_ID, tz=UTC, clock=clock
    )


@pytest.fixture
def retrier(queue, backend) -> DeliveryRetrier:
    return DeliveryRetrier(queue, backend)


@pytest_asyncio.fixture
async def client(
    backend, device, queue, status_cell, orchestrator, ingestor
) -> AsyncGenerator[AsyncClient, None]:
    """
    Bridge app wired to the in-memory backend and device fakes.
    """
    app.dependency_overrides[dependencies.get_backend_client] = lambda: backend
    app.dependency_overrides[dependencies.get_device_client] = lambda: device
    app.dependency_overrides[dependencies.get_durable_queue] = lambda: queue
    app.dependency_overrides[dependencies.get_sync_status_cell] = lambda: status_cell
    app.dependency_overrides[dependencies.get_sync_orchestrator] = lambda: orchestrator
    app.dependency_overrides[dependencies.get_attendance_ingestor] = lambda: ingestor

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
