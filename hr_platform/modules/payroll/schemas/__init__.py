"""Payroll schemas module."""

from .error_schemas import ErrorDetail, ErrorResponse, PayrollErrorCodes
from .workbook_schemas import (
    WorkbookInputRow,
    WorkbookExpenseRow,
    WorkbookImportRow,
    WorkbookParseResult,
)

__all__ = [
    'ErrorDetail',
    'ErrorResponse',
    'PayrollErrorCodes',
    'WorkbookInputRow',
    'WorkbookExpenseRow',
    'WorkbookImportRow',
    'WorkbookParseResult',
]
