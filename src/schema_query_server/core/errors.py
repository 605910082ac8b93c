"""
Global Error Handling

Application-wide exception handlers.

- Never leak internal exception details to clients
- Always return deterministic, machine-readable error responses
- Log full stack traces internally
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("sqs.errors")


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Expected pipeline failures never reach this handler: they are returned
    as rejections by the routes. Anything arriving here is a defect or an
    unexpected condition such as a malformed snapshot.

    Returns
    -------
    JSONResponse
        A JSON 500 response with a minimal error payload.
    """
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
