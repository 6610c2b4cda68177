"""Global exception handler for errors no router or service translated."""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from gallery.core.config import config

logger = logging.getLogger(__name__)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled error on {request.method} {request.url.path}: {exc}",
        exc_info=exc,
    )
    detail = "Internal server error" if config.is_production else str(exc)
    return JSONResponse(
        status_code=500,
        content={"success": False, "detail": detail},
    )
