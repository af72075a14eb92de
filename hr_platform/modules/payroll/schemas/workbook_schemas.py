# hr_platform/modules/payroll/schemas/workbook_schemas.py

"""
Structured rows produced by a payroll workbook parser.

Field aliases follow the camelCase JSON emitted by the upstream
spreadsheet parser so that its output can be replayed as-is.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any
from decimal import Decimal


class _WorkbookModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class WorkbookInputRow(_WorkbookModel):
    """One (period, payroll name, component) amount read from a sheet."""

    period_key: str = Field(..., alias="periodKey")
    payroll_name: str = Field(..., alias="payrollName")
    component_key: str = Field(..., alias="componentKey")
    amount: Decimal
    source_sheet: Optional[str] = Field(None, alias="sourceSheet")
    source_cell: Optional[str] = Field(None, alias="sourceCell")
    source_priority: int = Field(50, alias="sourcePriority")


class WorkbookExpenseRow(_WorkbookModel):
    period_key: Optional[str] = Field(None, alias="periodKey")
    payroll_name: Optional[str] = Field(None, alias="payrollName")
    category_key: str = Field(..., alias="categoryKey")
    description: Optional[str] = None
    amount: Decimal
    sheet_name: str = Field(..., alias="sheetName")
    row_ref: str = Field(..., alias="rowRef")


class WorkbookImportRow(_WorkbookModel):
    """Raw sheet row kept for audit."""

    sheet_name: str = Field(..., alias="sheetName")
    row_number: int = Field(..., alias="rowNumber")
    row_json: Dict[str, Any] = Field(default_factory=dict, alias="rowJson")
    period_key: Optional[str] = Field(None, alias="periodKey")
    payroll_name: Optional[str] = Field(None, alias="payrollName")
    normalized_name: Optional[str] = Field(None, alias="normalizedName")


class WorkbookParseResult(_WorkbookModel):
    payroll_names: List[str] = Field(default_factory=list, alias="payrollNames")
    period_keys: List[str] = Field(default_factory=list, alias="periodKeys")
    input_values: List[WorkbookInputRow] = Field(default_factory=list, alias="inputValues")
    expense_entries: List[WorkbookExpenseRow] = Field(default_factory=list, alias="expenseEntries")
    import_rows: List[WorkbookImportRow] = Field(default_factory=list, alias="importRows")
