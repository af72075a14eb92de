# hr_platform/modules/payroll/routes/helpers.py

"""
Helper functions shared by the payroll routes.

Centralizes the translation of payroll exceptions into HTTP errors.
"""

import logging

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from ..exceptions import PayrollException
from ..schemas.error_schemas import ErrorResponse, PayrollErrorCodes

logger = logging.getLogger(__name__)


def payroll_http_error(exc: PayrollException) -> HTTPException:
    """
    Convert a payroll exception into an HTTPException with an ErrorResponse body.

    Args:
        exc: Raised payroll exception

    Returns:
        HTTPException carrying the exception's status code
    """
    return HTTPException(
        status_code=exc.status_code,
        detail=ErrorResponse(
            error=exc.__class__.__name__,
            message=exc.message,
            code=exc.code,
            details=exc.details or None,
        ).model_dump(mode="json"),
    )


def unexpected_http_error(db: Session, exc: Exception, action: str) -> HTTPException:
    """Roll back the request session and report a 500."""
    db.rollback()
    logger.exception("Unexpected error while trying to %s", action)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=ErrorResponse(
            error="InternalError",
            message=f"Failed to {action}: {str(exc)}",
            code=PayrollErrorCodes.DATABASE_ERROR,
        ).model_dump(mode="json"),
    )
