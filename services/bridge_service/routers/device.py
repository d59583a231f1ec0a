from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status
from libs.common.config import Settings, get_settings
from services.bridge_service.clients.device import DeviceClient
from services.bridge_service.dependencies import get_device_client
from services.bridge_service.schemas import EventPushRequest, EventPushResponse

router = APIRouter(prefix="/device", tags=["device"])


@router.post("/event-push", response_model=EventPushResponse)
async def configure_event_push(
    body: Optional[EventPushRequest] = Body(default=None),
    settings: Settings = Depends(get_settings),
    device: DeviceClient = Depends(get_device_client),
):
    """
    Point the device's event push at this bridge and arm access events.
    """
    callback_url = (body.callback_url if body else None) or settings.DEVICE_CALLBACK_URL
    if not callback_url:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No callback URL given and DEVICE_CALLBACK_URL is not set",
        )
    await device.configure_event_push(callback_url)
    return EventPushResponse(callback_url=callback_url)
