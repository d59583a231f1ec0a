"""Process-wide bridge components.

Each getter builds its component once; routers take them through
``Depends`` and tests swap them with ``app.dependency_overrides``.
"""

from datetime import timedelta
from functools import lru_cache

from libs.common.config import get_settings
from libs.common.datetime_utils import site_timezone
from services.bridge_service.clients.backend import BackendClient
from services.bridge_service.clients.device import DeviceClient
from services.bridge_service.services.durable_queue import DurableQueue, FileRecordStore
from services.bridge_service.services.ingestor import AttendanceIngestor
from services.bridge_service.services.orchestrator import (
    SyncOrchestrator,
    SyncStatusCell,
)
from services.bridge_service.services.reconciler import DeviceReconciler
from services.bridge_service.services.retrier import DeliveryRetrier


@lru_cache
def get_durable_queue() -> DurableQueue:
    return DurableQueue(FileRecordStore(get_settings().QUEUE_DIR))


@lru_cache
def get_backend_client() -> BackendClient:
    return BackendClient.from_settings(get_settings())


@lru_cache
def get_device_client() -> DeviceClient:
    return DeviceClient.from_settings(get_settings())


@lru_cache
def get_sync_status_cell() -> SyncStatusCell:
    return SyncStatusCell()


@lru_cache
def get_device_reconciler() -> DeviceReconciler:
    return DeviceReconciler(
        get_device_client(), tz=site_timezone(get_settings().TIMEZONE)
    )


@lru_cache
def get_sync_orchestrator() -> SyncOrchestrator:
    return SyncOrchestrator(
        get_backend_client(),
        get_device_reconciler(),
        get_sync_status_cell(),
        site_id=get_settings().SITE_ID,
    )


@lru_cache
def get_attendance_ingestor() -> AttendanceIngestor:
    settings = get_settings()
    return AttendanceIngestor(
        get_backend_client(),
        get_durable_queue(),
        get_device_client(),
        site_id=settings.SITE_ID,
        tz=site_timezone(settings.TIMEZONE),
        pull_window=timedelta(minutes=settings.PULL_WINDOW_MINUTES),
    )


@lru_cache
def get_delivery_retrier() -> DeliveryRetrier:
    return DeliveryRetrier(
        get_durable_queue(),
        get_backend_client(),
        max_retries=get_settings().QUEUE_MAX_RETRIES,
    )
