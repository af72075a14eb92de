"""
Application-wide exception handlers.

Errors that escape a route are rendered in the same ``{"detail": {...}}``
shape the payroll routes produce for their own errors, so clients parse a
single error format.
"""

from datetime import datetime
from typing import Optional
import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


def error_body(error: str, message: str, code: str, path: Optional[str] = None) -> dict:
    body = {
        "error": error,
        "message": message,
        "code": code,
        "details": None,
        "timestamp": datetime.utcnow().isoformat(),
    }
    if path:
        body["path"] = path
    return {"detail": body}


async def handle_value_error(request: Request, exc: ValueError) -> JSONResponse:
    """Convert a stray ValueError into a 400 response"""
    logger.warning("ValueError at %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("ValueError", str(exc), "VALIDATION_ERROR", str(request.url.path)),
    )


async def handle_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Convert an unhandled database error into a 500 response without leaking SQL"""
    logger.error("Database error at %s: %s", request.url.path, exc, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(
            "DatabaseError",
            "A database error occurred",
            "PAYROLL_DATABASE_ERROR",
            str(request.url.path),
        ),
    )


def register_exception_handlers(app):
    """Register all exception handlers with the FastAPI app"""
    app.add_exception_handler(ValueError, handle_value_error)
    app.add_exception_handler(SQLAlchemyError, handle_database_error)
