"""Global exception handlers producing the bridge's structured error body.

Every failure leaving the API has the shape ``{"success": false, "error": ...}``.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from libs.common.errors import BridgeError, PersistenceError
from libs.common.logging import get_logger

logger = get_logger(__name__)


def error_body(message: str) -> dict:
    return {"success": False, "error": message}


async def bridge_error_handler(request: Request, exc: BridgeError) -> JSONResponse:
    if isinstance(exc, PersistenceError):
        logger.critical(f"Durable queue failure on {request.url.path}: {exc.message}")
    else:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message))


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    field = str(errors[0]["loc"][-1]) if errors and errors[0]["loc"] else "request"
    return JSONResponse(status_code=400, content=error_body(f"Invalid {field}"))


async def http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.url.path}")
    return JSONResponse(status_code=500, content=error_body("Internal server error"))


def add_exception_handlers(app: FastAPI) -> None:
    """Register the bridge exception handlers on ``app``."""
    app.add_exception_handler(BridgeError, bridge_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
