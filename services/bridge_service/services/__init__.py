"""Bridge business logic package."""

from services.bridge_service.services.durable_queue import (
    DurableQueue,
    FileRecordStore,
    RecordStore,
)
from services.bridge_service.services.ingestor import AttendanceIngestor
from services.bridge_service.services.orchestrator import (
    SyncOrchestrator,
    SyncStatusCell,
)
from services.bridge_service.services.reconciler import DeviceReconciler
from services.bridge_service.services.retrier import DeliveryRetrier
from services.bridge_service.services.validity import has_access, resolve

__all__ = [
    "AttendanceIngestor",
    "DeliveryRetrier",
    "DeviceReconciler",
    "DurableQueue",
    "FileRecordStore",
    "RecordStore",
    "SyncOrchestrator",
    "SyncStatusCell",
    "has_access",
    "resolve",
]
