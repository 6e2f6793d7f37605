"""
HTTP glue shared by the service APIs: admin capability check and mapping of
domain errors to status codes.

"Not found" (404) and "backend unavailable" (503) stay distinct so a client can
tell an unknown or fake code apart from a transient outage.
"""
import hmac
import logging
from typing import Optional

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse

import config
from shared.domain.exceptions import (
    BackendUnavailable,
    Conflict,
    NotFound,
    RegistryError,
    Unauthorized,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_CODES = {
    ValidationError: 422,
    Conflict: 409,
    NotFound: 404,
    BackendUnavailable: 503,
    Unauthorized: 403,
}


def is_admin(x_admin_key: Optional[str] = Header(default=None)) -> bool:
    """
    FastAPI dependency: does the request carry the shared admin key?

    The services only ever see the resulting boolean.
    """
    expected = config.get_admin_key()
    if not expected or not x_admin_key:
        return False
    return hmac.compare_digest(x_admin_key.encode(), expected.encode())


def require_admin(authorized: bool):
    if not authorized:
        raise Unauthorized("Admin key required")


def status_code_for(error: RegistryError) -> int:
    for error_type in type(error).__mro__:
        if error_type in STATUS_CODES:
            return STATUS_CODES[error_type]
    return 500


def register_error_handlers(app: FastAPI):
    @app.exception_handler(RegistryError)
    async def registry_error_handler(request: Request, exc: RegistryError):
        status_code = status_code_for(exc)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        headers = {"Retry-After": "1"} if isinstance(exc, BackendUnavailable) else None
        return JSONResponse(
            status_code=status_code,
            content={"error": type(exc).__name__, "detail": str(exc)},
            headers=headers,
        )
