from services.bridge_service.schemas.events import (
    DeviceEvent,
    parse_device_event,
)
from services.bridge_service.schemas.main import (
    ClearQueueResponse,
    EventPushRequest,
    EventPushResponse,
    HealthResponse,
    IngestResponse,
    PullResponse,
    QueueHealth,
    QueueResponse,
    ServiceCheck,
    SyncAllResponse,
    SyncOneResponse,
    SyncStatusResponse,
)

__all__ = [
    "DeviceEvent",
    "parse_device_event",
    "ClearQueueResponse",
    "EventPushRequest",
    "EventPushResponse",
    "HealthResponse",
    "IngestResponse",
    "PullResponse",
    "QueueHealth",
    "QueueResponse",
    "ServiceCheck",
    "SyncAllResponse",
    "SyncOneResponse",
    "SyncStatusResponse",
]
