# hr_platform/modules/payroll/schemas/error_schemas.py

"""
Error response schemas for structured error handling.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime


class ErrorDetail(BaseModel):
    """Detailed error information"""

    field: Optional[str] = None
    message: str
    code: Optional[str] = None


class ErrorResponse(BaseModel):
    """Standardized error response"""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "PayrollPolicyError",
                "message": "Period 03/2025 is LOCKED; inputs cannot be edited",
                "code": "PAYROLL_PERIOD_NOT_EDITABLE",
                "details": [
                    {
                        "field": "status",
                        "message": "LOCKED",
                        "code": "PAYROLL_PERIOD_NOT_EDITABLE",
                    }
                ],
                "timestamp": "2025-04-01T12:00:00Z",
            }
        }
    )

    error: str = Field(..., description="Error type or category")
    message: str = Field(..., description="Human-readable error message")
    code: str = Field(..., description="Machine-readable error code")
    details: Optional[List[ErrorDetail]] = Field(
        None, description="Additional error details"
    )
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    request_id: Optional[str] = None


class PayrollErrorCodes:
    """Centralized error codes for payroll module"""

    # Validation errors
    INVALID_AMOUNT = "PAYROLL_INVALID_AMOUNT"
    INVALID_COMPONENT_KEY = "PAYROLL_INVALID_COMPONENT_KEY"
    INVALID_PERIOD_KEY = "PAYROLL_INVALID_PERIOD_KEY"
    INVALID_DATA_FORMAT = "PAYROLL_INVALID_DATA_FORMAT"
    EMPTY_ROSTER = "PAYROLL_EMPTY_ROSTER"
    NO_PERIODS_IN_WORKBOOK = "PAYROLL_NO_PERIODS_IN_WORKBOOK"
    INVALID_TAX_TABLE = "PAYROLL_INVALID_TAX_TABLE"

    # Policy errors
    PERIOD_NOT_EDITABLE = "PAYROLL_PERIOD_NOT_EDITABLE"
    INVALID_STATUS_TRANSITION = "PAYROLL_INVALID_STATUS_TRANSITION"
    UNRESOLVED_IDENTITIES = "PAYROLL_UNRESOLVED_IDENTITIES"
    NO_ELIGIBLE_PERIODS = "PAYROLL_NO_ELIGIBLE_PERIODS"
    NO_RECEIPTS = "PAYROLL_NO_RECEIPTS"
    DUPLICATE_FINANCIAL_YEAR = "PAYROLL_DUPLICATE_FINANCIAL_YEAR"

    # Database errors
    DATABASE_ERROR = "PAYROLL_DATABASE_ERROR"
    RECORD_NOT_FOUND = "PAYROLL_RECORD_NOT_FOUND"
