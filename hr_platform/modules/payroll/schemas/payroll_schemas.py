# hr_platform/modules/payroll/schemas/payroll_schemas.py

"""
Request/response models for the payroll period engine.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import date, datetime
from decimal import Decimal

from ..enums.payroll_enums import (
    PayrollPeriodStatus,
    PayrollSourceType,
    PayrollInputSourceMethod,
    PayrollIdentityStatus,
    PayrollReceiptStatus,
    ReconciliationSeverity,
)
from ..services.normalizers import parse_period_key


# Service results

class MappingSummary(BaseModel):
    """Counts of payroll names by identity resolution outcome."""

    total: int = 0
    auto_matched: int = 0
    ambiguous: int = 0
    unresolved: int = 0


class IdentityResolution(BaseModel):
    normalized_payroll_name: str
    display_payroll_name: str
    status: PayrollIdentityStatus
    user_id: Optional[int] = None


class MappingSyncResult(BaseModel):
    summary: MappingSummary
    resolutions: Dict[str, IdentityResolution] = Field(default_factory=dict)


class ReconciliationMismatch(BaseModel):
    """Computed net salary disagrees with the workbook PAID amount."""

    payroll_name: str
    period_key: str
    check: str = "NET_VS_PAID"
    expected: Decimal = Field(..., description="Computed net salary")
    actual: Decimal = Field(..., description="Paid amount from the workbook")
    delta: Decimal
    severity: ReconciliationSeverity
    reason: str


class ComputedMetric(BaseModel):
    payroll_name: str
    user_id: Optional[int] = None
    metric_key: str
    amount: Decimal


class RecalculationResult(BaseModel):
    period_id: int
    period_key: str
    payroll_count: int
    computed_count: int
    mismatch_count: int
    computed: List[ComputedMetric] = Field(default_factory=list)
    mismatches: List[ReconciliationMismatch] = Field(default_factory=list)
    unattributed_expense_total: Decimal = Decimal("0.00")


class PeriodRef(BaseModel):
    id: int
    period_key: str
    label: str
    status: PayrollPeriodStatus
    created: bool = False


class CarryForwardResult(BaseModel):
    base_period_id: int
    target_period_id: int
    carried_input_count: int
    carried_expense_count: int


class PayrollBackfillOptions(BaseModel):
    """Options for a multi-month workbook backfill."""

    buffer: bytes
    actor_id: Optional[int] = None
    file_name: str = "payroll-workbook.json"
    months: int = 12
    tolerance: Decimal = Decimal("1")
    lock_approved: bool = True
    use_employee_roster_names: bool = True
    overwrite_locked: bool = False
    persist_import_rows: bool = False

    @field_validator("tolerance")
    @classmethod
    def validate_tolerance(cls, v):
        if v < 0:
            raise ValueError("tolerance must not be negative")
        return v


class PayrollBackfillSummary(BaseModel):
    batch_id: Optional[int] = None
    selected_period_keys: List[str] = Field(default_factory=list)
    skipped_locked_period_keys: List[str] = Field(default_factory=list)
    overwritten_locked_period_keys: List[str] = Field(default_factory=list)
    periods_created: int = 0
    periods_processed: int = 0
    periods_locked: int = 0
    periods_blocked: int = 0
    periods_failed: int = 0
    blocked_by_period: Dict[str, List[str]] = Field(default_factory=dict)
    failed_by_period: Dict[str, str] = Field(default_factory=dict)
    imported_rows: int = 0
    imported_inputs: int = 0
    imported_expenses: int = 0
    mapping_summary: MappingSummary = Field(default_factory=MappingSummary)


# API requests

class PeriodCreateRequest(BaseModel):
    period_key: str = Field(..., description="Payroll month as MM/YYYY")
    carry_forward_from_period_id: Optional[int] = Field(
        None, description="Copy inputs and expenses from this period"
    )

    @field_validator("period_key")
    @classmethod
    def validate_period_key(cls, v):
        key = parse_period_key(v)
        if key is None:
            raise ValueError("period_key must be a MM/YYYY month between 2015 and 2100")
        return key


class InputValueUpdate(BaseModel):
    payroll_name: str = Field(..., min_length=1, max_length=200)
    component_key: str = Field(..., description="Closed component key, e.g. BASIC_SALARY")
    amount: Any = Field(..., description="Number or formatted amount string")
    note: Optional[str] = None
    user_id: Optional[int] = None


class ExpenseEntryCreate(BaseModel):
    payroll_name: Optional[str] = Field(None, max_length=200)
    user_id: Optional[int] = None
    category_key: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    amount: Any
    sheet_name: Optional[str] = None
    row_ref: Optional[str] = None


class PeriodInputsUpdateRequest(BaseModel):
    inputs: List[InputValueUpdate] = Field(default_factory=list)
    expenses: Optional[List[ExpenseEntryCreate]] = Field(
        None, description="When given, replaces the period's expense entries"
    )


class RecalculateRequest(BaseModel):
    tolerance: Optional[Decimal] = Field(None, ge=0)


class ApprovePeriodRequest(BaseModel):
    comment: Optional[str] = Field(None, max_length=1000)


class SignatureOutcomeRequest(BaseModel):
    delivered: bool = Field(..., description="Whether the envelope was delivered")
    comment: Optional[str] = Field(None, max_length=1000)


class CarryForwardRequest(BaseModel):
    base_period_id: int


class IdentityMappingResolveRequest(BaseModel):
    user_id: int
    notes: Optional[str] = Field(None, max_length=1000)


class TaxBracketInput(BaseModel):
    """Annual bracket: tax = fixed_tax + (income - income_from) * tax_rate."""

    income_from: Decimal = Field(..., ge=0)
    income_to: Optional[Decimal] = Field(None, ge=0, description="Open-ended when omitted")
    fixed_tax: Decimal = Field(Decimal("0"), ge=0)
    tax_rate: Decimal = Field(..., ge=0, le=1, description="Marginal rate as a fraction")


class FinancialYearCreateRequest(BaseModel):
    label: str = Field(..., min_length=1, max_length=50)
    start_date: date
    end_date: date
    brackets: List[TaxBracketInput] = Field(default_factory=list)


class TaxBracketsReplaceRequest(BaseModel):
    brackets: List[TaxBracketInput] = Field(..., min_length=1)


# API responses

class PeriodResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    label: str
    period_start: date
    period_end: date
    status: PayrollPeriodStatus
    source_type: PayrollSourceType
    created_by_id: Optional[int] = None
    approved_by_id: Optional[int] = None
    approved_at: Optional[datetime] = None
    locked_at: Optional[datetime] = None
    summary_json: Optional[Dict[str, Any]] = None


class InputValueResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    payroll_name: str
    user_id: Optional[int] = None
    component_key: str
    amount: Decimal
    source_method: PayrollInputSourceMethod
    source_sheet: Optional[str] = None
    source_cell: Optional[str] = None
    is_override: bool
    note: Optional[str] = None


class ExpenseEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    payroll_name: Optional[str] = None
    user_id: Optional[int] = None
    category_key: str
    description: Optional[str] = None
    amount: Decimal
    sheet_name: Optional[str] = None
    row_ref: Optional[str] = None


class ComputedValueResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    payroll_name: str
    user_id: Optional[int] = None
    metric_key: str
    amount: Decimal
    formula_version: str


class ReceiptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    payroll_name: str
    user_id: Optional[int] = None
    status: PayrollReceiptStatus
    version: int
    receipt_json: Dict[str, Any]


class ApprovalEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    actor_id: Optional[int] = None
    from_status: Optional[PayrollPeriodStatus] = None
    to_status: PayrollPeriodStatus
    comment: Optional[str] = None
    created_at: datetime


class PeriodDetailResponse(PeriodResponse):
    computed_values: List[ComputedValueResponse] = Field(default_factory=list)
    receipts: List[ReceiptResponse] = Field(default_factory=list)
    approval_events: List[ApprovalEventResponse] = Field(default_factory=list)


class PeriodCreateResponse(BaseModel):
    period: PeriodRef
    carry_forward: Optional[CarryForwardResult] = None


class PeriodInputsResponse(BaseModel):
    period_id: int
    status: PayrollPeriodStatus
    inputs: List[InputValueResponse] = Field(default_factory=list)
    expenses: List[ExpenseEntryResponse] = Field(default_factory=list)


class IdentityMappingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    normalized_payroll_name: str
    display_payroll_name: str
    user_id: Optional[int] = None
    status: PayrollIdentityStatus
    last_matched_at: Optional[datetime] = None
    notes: Optional[str] = None


class TaxBracketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_index: int
    income_from: Decimal
    income_to: Optional[Decimal] = None
    fixed_tax: Decimal
    tax_rate: Decimal


class FinancialYearResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    label: str
    start_date: date
    end_date: date
    is_active: bool
    brackets: List[TaxBracketResponse] = Field(default_factory=list)
