from hr_platform.modules.staff.models import StaffMember  # noqa: F401

from .payroll_models import (
    PayrollPeriod,
    PayrollInputValue,
    PayrollExpenseEntry,
    PayrollComputedValue,
    PayrollReceipt,
)
from .payroll_audit import PayrollApprovalEvent
from .payroll_import import (
    PayrollImportBatch,
    PayrollImportRow,
    PayrollIdentityMapping,
)
from .payroll_configuration import PayrollFinancialYear, PayrollTaxBracket

__all__ = [
    "PayrollPeriod",
    "PayrollInputValue",
    "PayrollExpenseEntry",
    "PayrollComputedValue",
    "PayrollReceipt",
    "PayrollApprovalEvent",
    "PayrollImportBatch",
    "PayrollImportRow",
    "PayrollIdentityMapping",
    "PayrollFinancialYear",
    "PayrollTaxBracket",
]
