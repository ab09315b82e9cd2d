"""
Domain error taxonomy and global exception handlers.

Every business failure is a ``RollcallError`` subclass carrying a ``kind``
discriminator, an HTTP status and optional field / context detail.  The
handlers below turn them into ``{"success": false, "kind": ..., "detail": ...}``
bodies and prevent stack-trace leakage for everything else.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

logger = logging.getLogger(__name__)


class RollcallError(Exception):
    """Base class for failures reported back to the caller."""

    kind = "Error"
    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "success": False,
            "kind": self.kind,
            "detail": self.message,
        }
        if self.field:
            body["field"] = self.field
        if self.context:
            body["context"] = self.context
        return body


# ── Validation ──────────────────────────────────────────────────────
class ValidationError(RollcallError):
    kind = "ValidationError"
    status_code = 422


class InvalidTimestamp(ValidationError):
    kind = "InvalidTimestamp"


# ── Authorization / lookup ─────────────────────────────────────────
class AuthorizationError(RollcallError):
    kind = "AuthorizationError"
    status_code = 403


class NotFound(RollcallError):
    kind = "NotFound"
    status_code = 404


# ── State conflicts ────────────────────────────────────────────────
class StateConflict(RollcallError):
    kind = "StateConflict"
    status_code = 409


class AlreadyCheckedIn(StateConflict):
    kind = "AlreadyCheckedIn"


class NotCheckedIn(StateConflict):
    kind = "NotCheckedIn"


class AlreadyCheckedOut(StateConflict):
    kind = "AlreadyCheckedOut"


# ── Evidence ───────────────────────────────────────────────────────
class EvidenceError(RollcallError):
    kind = "EvidenceError"
    status_code = 400


class MissingEvidence(EvidenceError):
    kind = "MissingEvidence"


class FaceMismatch(EvidenceError):
    kind = "FaceMismatch"


class NoFaceDetected(EvidenceError):
    kind = "NoFaceDetected"


# ── Infrastructure ─────────────────────────────────────────────────
class ServerError(RollcallError):
    """Transient infrastructure failure that outlived its retries."""

    kind = "ServerError"
    status_code = 503


# ── Handlers ───────────────────────────────────────────────────────
async def _rollcall_error_handler(_request: Request, exc: RollcallError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s: %s", exc.kind, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def _http_exception_handler(_request: Request, exc: HTTPException) -> JSONResponse:
    kind = {401: "AuthenticationError", 403: "AuthorizationError", 404: "NotFound"}.get(
        exc.status_code, "HTTPError"
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "kind": kind, "success": False},
        headers=getattr(exc, "headers", None),
    )


async def _request_validation_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    field = ".".join(str(p) for p in errors[0]["loc"][1:]) if errors else None
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "kind": "ValidationError",
            "detail": errors[0]["msg"] if errors else "Invalid request",
            "field": field,
        },
    )


async def _integrity_error_handler(_request: Request, exc: IntegrityError) -> JSONResponse:
    logger.error("Database integrity error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=409,
        content={"detail": "Database constraint violation", "kind": "StateConflict", "success": False},
    )


async def _sqlalchemy_error_handler(_request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal database error", "kind": "ServerError", "success": False},
    )


async def _generic_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "kind": "ServerError", "success": False},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI app."""
    app.add_exception_handler(RollcallError, _rollcall_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(IntegrityError, _integrity_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, _sqlalchemy_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _generic_exception_handler)
