# groupwork/core/errors.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class DomainError(Exception):
    """
    Base for every business failure raised by the services.

    All of them are terminal for the triggering operation: the service raises
    before committing, so nothing is partially applied.
    """

    code = "DOMAIN_ERROR"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidParameter(DomainError, ValueError):
    code = "INVALID_PARAMETER"
    status_code = 400


class PolicyViolation(DomainError, PermissionError):
    """A deadline has passed or the participation mode forbids the action."""

    code = "POLICY_VIOLATION"
    status_code = 403


class Forbidden(DomainError, PermissionError):
    """The actor does not hold the role the action needs."""

    code = "FORBIDDEN"
    status_code = 403


class NotFound(DomainError, LookupError):
    code = "NOT_FOUND"
    status_code = 404


class Conflict(DomainError, ValueError):
    """State changed underneath the caller (racing operation, duplicate, wrong lifecycle state)."""

    code = "CONFLICT"
    status_code = 409


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    logger.info(
        "request rejected",
        extra={
            "request_id": _request_id(request),
            "path": request.url.path,
            "code": exc.code,
            "reason": exc.message,
        },
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled API exception",
        exc_info=exc,
        extra={"request_id": _request_id(request), "path": request.url.path},
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error.", "code": "INTERNAL_ERROR"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
