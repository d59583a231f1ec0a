"""Reusable async HTTP helper for calls to the bridge's remote collaborators.

Both the backend and the device clients go through ``remote_request`` so that
timeouts and transport failures surface as ``TransientRemoteError`` and
non-success statuses are classified the same way everywhere.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

import httpx
from libs.common.errors import PermanentRemoteError, TransientRemoteError
from libs.common.logging import get_logger, get_request_id

logger = get_logger(__name__)

# Default timeout for remote calls (seconds).
_DEFAULT_TIMEOUT = 10.0

# Statuses worth retrying later besides 5xx.
_TRANSIENT_STATUSES = {408, 425, 429}


async def remote_request(
    *,
    base_url: str,
    method: str,
    path: str,
    service: str,
    auth: Optional[httpx.Auth] = None,
    headers: Optional[dict] = None,
    json: Any = None,
    content: Optional[str | bytes] = None,
    params: Optional[dict] = None,
    timeout: float = _DEFAULT_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.Response:
    """Make one HTTP call to a remote collaborator.

    Args:
        base_url: Base URL of the collaborator (e.g. settings.BACKEND_URL).
        method: HTTP method (GET, POST, PUT, DELETE, ...).
        path: URL path on the collaborator.
        service: Name used in errors and logs ("backend" or "device").
        auth: Optional httpx auth (digest, basic).
        headers: Extra request headers.
        json: Optional JSON body.
        content: Optional raw body (e.g. XML).
        params: Optional query parameters.
        timeout: Request timeout in seconds.
        transport: Optional transport override (tests use httpx.MockTransport).

    Returns:
        The httpx.Response object, whatever its status.

    Raises:
        TransientRemoteError on timeouts and connection failures.
    """
    request_headers = dict(headers or {})
    request_id = get_request_id()
    if request_id:
        request_headers["X-Request-ID"] = request_id

    try:
        async with httpx.AsyncClient(
            base_url=base_url, timeout=timeout, auth=auth, transport=transport
        ) as client:
            response = await client.request(
                method,
                path,
                headers=request_headers,
                json=json,
                content=content,
                params=params,
            )
    except httpx.TimeoutException as e:
        raise TransientRemoteError(
            f"{service} request timed out: {method} {path}", service=service
        ) from e
    except httpx.RequestError as e:
        raise TransientRemoteError(
            f"{service} unreachable: {type(e).__name__}: {e}", service=service
        ) from e

    logger.debug(f"{service} {method} {path} -> {response.status_code}")
    return response


def ensure_success(
    response: httpx.Response, *, service: str, allow: Iterable[int] = ()
) -> httpx.Response:
    """Raise a classified remote error unless the response succeeded.

    Statuses in ``allow`` are accepted as-is (e.g. 404 on delete).
    """
    status = response.status_code
    if response.is_success or status in allow:
        return response

    detail = response.text[:200] if response.content else response.reason_phrase
    message = f"{service} returned {status}: {detail}"
    if status >= 500 or status in _TRANSIENT_STATUSES:
        raise TransientRemoteError(message, service=service, remote_status=status)
    raise PermanentRemoteError(message, service=service, remote_status=status)
