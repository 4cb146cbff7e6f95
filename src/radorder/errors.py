"""Application exception hierarchy.

Services raise these; ``register_exception_handlers`` renders them as

    {"type": ..., "code": ..., "message": ..., "detail": ...}

with the HTTP status carried by the exception class.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger("errors")


class RadOrderError(Exception):
    """Base class for all application errors."""

    type = "error"
    code = "UNKNOWN_ERROR"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        detail: Any = None,
        http_status: Optional[int] = None,
    ) -> None:
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status
        self.detail = detail
        super().__init__(message)


class InvalidInputError(RadOrderError):
    type = "validation_error"
    code = "INVALID_INPUT"
    http_status = status.HTTP_400_BAD_REQUEST


class NotFoundError(RadOrderError):
    type = "not_found"
    code = "NOT_FOUND"
    http_status = status.HTTP_404_NOT_FOUND


class PermissionDeniedError(RadOrderError):
    type = "forbidden"
    code = "FORBIDDEN"
    http_status = status.HTTP_403_FORBIDDEN


class WorkflowError(RadOrderError):
    """An operation is not allowed in the current state of a resource."""

    type = "block"
    code = "WORKFLOW_BLOCKED"
    http_status = status.HTTP_409_CONFLICT


class ValidationServiceUnavailable(RadOrderError):
    """The LLM provider or the code reference database could not be used."""

    type = "unavailable"
    code = "VALIDATION_SERVICE_UNAVAILABLE"
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE


class CodeDatabaseError(ValidationServiceUnavailable):
    code = "CODE_DATABASE_UNAVAILABLE"


class LLMResponseError(RadOrderError):
    """The LLM answered, but not with a usable validation result.

    Never rendered to clients: the validation service replaces the result
    with the fallback generator's output.
    """

    code = "INVALID_LLM_RESPONSE"


async def _radorder_error_handler(request: Request, exc: RadOrderError) -> JSONResponse:
    body = {"type": exc.type, "code": exc.code, "message": exc.message}
    if exc.detail is not None:
        body["detail"] = exc.detail
    return JSONResponse(body, status_code=exc.http_status)


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    body = {
        "type": "validation_error",
        "code": "VALIDATION_ERROR",
        "message": "Request validation failed",
        "detail": [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
            for err in exc.errors()
        ],
    }
    return JSONResponse(body, status_code=status.HTTP_400_BAD_REQUEST)


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        {"type": "error", "code": "INTERNAL_ERROR", "message": "Internal server error"},
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RadOrderError, _radorder_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
