"""HTTP clients for the bridge's two remote collaborators."""

from services.bridge_service.clients.backend import BackendClient
from services.bridge_service.clients.device import DeviceClient

__all__ = ["BackendClient", "DeviceClient"]
