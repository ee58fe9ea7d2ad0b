"""
Application error taxonomy and FastAPI exception handlers.

Services raise AppError subclasses. Anything else reaching the HTTP layer
is normalized first: database integrity errors are mapped by SQLSTATE
onto the taxonomy, remaining SQLAlchemy errors become DatabaseError and
unknown exceptions become a generic 500.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from fundflow.core.config import settings

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
NOT_NULL_VIOLATION = "23502"


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500
    error_code: str = "INTERNAL_SERVER_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        is_operational: bool = True,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.is_operational = is_operational
        self.timestamp = datetime.utcnow().isoformat()

    @property
    def status(self) -> str:
        return "fail" if 400 <= self.status_code < 500 else "error"

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "status": self.status,
            "message": self.message,
            "error_code": self.error_code,
            "timestamp": self.timestamp,
        }


class ValidationError(AppError):
    """Malformed or missing input."""

    status_code = 400
    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        return data


class NotFoundError(AppError):
    """Missing resource, or one the caller does not own."""

    status_code = 404
    error_code = "NOT_FOUND_ERROR"

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found")
        self.resource = resource


class ConflictError(AppError):
    status_code = 409
    error_code = "CONFLICT_ERROR"

    def __init__(self, message: str = "Resource conflict"):
        super().__init__(message)


class EmailDeliveryError(AppError):
    """The mail provider rejected or failed a send."""

    status_code = 502
    error_code = "EMAIL_DELIVERY_ERROR"

    def __init__(self, message: str = "Send failed"):
        super().__init__(message)


class DatabaseError(AppError):
    """Wraps an underlying SQL failure."""

    status_code = 500
    error_code = "DATABASE_ERROR"

    def __init__(self, message: str = "Database operation failed", original: Optional[BaseException] = None):
        super().__init__(message)
        self.original = original


def _sqlstate(exc: IntegrityError) -> Optional[str]:
    """Extract the SQLSTATE from a driver error wrapped by SQLAlchemy."""
    for err in (exc.orig, getattr(exc.orig, "__cause__", None)):
        if err is None:
            continue
        code = getattr(err, "sqlstate", None) or getattr(err, "pgcode", None)
        if code:
            return str(code)
    return None


def _column_name(exc: IntegrityError) -> Optional[str]:
    for err in (exc.orig, getattr(exc.orig, "__cause__", None)):
        column = getattr(err, "column_name", None)
        if column:
            return column
    return None


def normalize_error(exc: BaseException) -> AppError:
    """Convert any exception into an AppError."""
    if isinstance(exc, AppError):
        return exc

    if isinstance(exc, IntegrityError):
        code = _sqlstate(exc)
        if code == UNIQUE_VIOLATION:
            return ConflictError("Resource already exists")
        if code == FOREIGN_KEY_VIOLATION:
            return ValidationError("Referenced resource does not exist")
        if code == NOT_NULL_VIOLATION:
            field = _column_name(exc) or "field"
            return ValidationError(f"{field} is required", field=field)
        return DatabaseError(original=exc)

    if isinstance(exc, SQLAlchemyError):
        return DatabaseError(original=exc)

    message = "Something went wrong" if settings.is_production else str(exc) or "Internal server error"
    return AppError(message, status_code=500, error_code="INTERNAL_SERVER_ERROR", is_operational=False)


def integrity_error(exc: IntegrityError, conflict_message: str) -> AppError:
    """Like ``normalize_error`` but with a resource-specific message for unique violations."""
    error = normalize_error(exc)
    if isinstance(error, ConflictError):
        return ConflictError(conflict_message)
    return error


def error_response(error: AppError) -> JSONResponse:
    body = error.to_dict()
    if settings.is_production and not error.is_operational:
        body["message"] = "Something went wrong"
        body["error_code"] = "INTERNAL_SERVER_ERROR"
    return JSONResponse(status_code=error.status_code, content=body)


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers that render the error taxonomy as JSON."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
        else:
            logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
        return error_response(exc)

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        error = normalize_error(exc)
        if error.status_code >= 500:
            logger.exception("Database error on %s %s", request.method, request.url.path)
        else:
            logger.warning("%s %s -> %s: %s", request.method, request.url.path, error.status_code, error.message)
        return error_response(error)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled error on %s %s: %s", request.method, request.url.path, exc,
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        return error_response(normalize_error(exc))
