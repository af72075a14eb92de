# hr_platform/modules/payroll/exceptions.py

"""
Custom exceptions for payroll module.

Validation errors are raised before any write, policy errors when a legal
request is illegal for the period's current status, and transaction errors
when the database rejects a bulk write. Blocked identities and
reconciliation mismatches are returned as data, never raised.
"""

from typing import Optional, List, Any
from .schemas.error_schemas import ErrorDetail, PayrollErrorCodes


class PayrollException(Exception):
    """Base exception for payroll module"""
    def __init__(
        self,
        message: str,
        code: str = PayrollErrorCodes.DATABASE_ERROR,
        details: Optional[List[ErrorDetail]] = None,
        status_code: int = 400
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or []
        self.status_code = status_code


class PayrollValidationError(PayrollException):
    """Malformed payload: unknown component, non-numeric amount, empty roster"""
    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        code: str = PayrollErrorCodes.INVALID_DATA_FORMAT,
        details: Optional[List[ErrorDetail]] = None,
    ):
        if field and not details:
            details = [ErrorDetail(field=field, message=message, code=code)]
        super().__init__(
            message=message,
            code=code,
            details=details,
            status_code=422
        )


class PayrollPolicyError(PayrollException):
    """Request is well formed but not allowed in the period's current status"""
    def __init__(
        self,
        message: str,
        code: str = PayrollErrorCodes.INVALID_STATUS_TRANSITION,
        status: Optional[str] = None,
        details: Optional[List[ErrorDetail]] = None,
    ):
        if status and not details:
            details = [ErrorDetail(field="status", message=status, code=code)]
        super().__init__(
            message=message,
            code=code,
            details=details,
            status_code=409
        )


class PayrollNotFoundError(PayrollException):
    """Resource not found error"""
    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            message=f"{resource} with identifier {identifier} not found",
            code=PayrollErrorCodes.RECORD_NOT_FOUND,
            status_code=404
        )


class PayrollTransactionError(PayrollException):
    """Database failure during a bulk write or a double transition"""
    def __init__(self, message: str, batch_id: Optional[int] = None):
        if batch_id is not None:
            message = f"Import batch {batch_id}: {message}"
        super().__init__(
            message=message,
            code=PayrollErrorCodes.DATABASE_ERROR,
            status_code=500
        )
