from enum import Enum


class PayrollPeriodStatus(str, Enum):
    DRAFT = "DRAFT"
    CALCULATED = "CALCULATED"
    APPROVED = "APPROVED"
    SENDING = "SENDING"
    SENT = "SENT"
    LOCKED = "LOCKED"


class PayrollSourceType(str, Enum):
    """Where the content of a period came from."""
    WORKBOOK = "WORKBOOK"
    MANUAL = "MANUAL"
    CARRY_FORWARD = "CARRY_FORWARD"


class PayrollInputSourceMethod(str, Enum):
    MANUAL = "MANUAL"
    WORKBOOK = "WORKBOOK"
    CARRY_FORWARD = "CARRY_FORWARD"


class PayrollIdentityStatus(str, Enum):
    """Resolution state of a payroll name alias."""
    AUTO_MATCHED = "AUTO_MATCHED"
    MANUAL_MATCHED = "MANUAL_MATCHED"
    AMBIGUOUS = "AMBIGUOUS"
    UNRESOLVED = "UNRESOLVED"


class PayrollImportBatchStatus(str, Enum):
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class PayrollReceiptStatus(str, Enum):
    READY = "READY"
    SENDING = "SENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class PayrollComponentKey(str, Enum):
    """Closed set of payroll input line identifiers."""
    BASIC_SALARY = "BASIC_SALARY"
    MEDICAL_TAX_EXEMPTION = "MEDICAL_TAX_EXEMPTION"
    BONUS = "BONUS"
    MEDICAL_ALLOWANCE = "MEDICAL_ALLOWANCE"
    TRAVEL_REIMBURSEMENT = "TRAVEL_REIMBURSEMENT"
    UTILITY_REIMBURSEMENT = "UTILITY_REIMBURSEMENT"
    MEALS_REIMBURSEMENT = "MEALS_REIMBURSEMENT"
    MOBILE_REIMBURSEMENT = "MOBILE_REIMBURSEMENT"
    EXPENSE_REIMBURSEMENT = "EXPENSE_REIMBURSEMENT"
    ADVANCE_LOAN = "ADVANCE_LOAN"
    INCOME_TAX = "INCOME_TAX"
    ADJUSTMENT = "ADJUSTMENT"
    LOAN_REPAYMENT = "LOAN_REPAYMENT"
    PAID = "PAID"


class PayrollMetricKey(str, Enum):
    """Closed set of computed figures."""
    TOTAL_TAXABLE_SALARY = "TOTAL_TAXABLE_SALARY"
    TOTAL_EARNINGS = "TOTAL_EARNINGS"
    TOTAL_DEDUCTIONS = "TOTAL_DEDUCTIONS"
    NET_SALARY = "NET_SALARY"
    BALANCE = "BALANCE"


class ComponentClassification(str, Enum):
    TAXABLE_EARNING = "TAXABLE_EARNING"
    NON_TAXABLE_EARNING = "NON_TAXABLE_EARNING"
    DEDUCTION = "DEDUCTION"
    SETTLEMENT = "SETTLEMENT"


class ReconciliationSeverity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"


COMPONENT_CLASSIFICATION = {
    PayrollComponentKey.BASIC_SALARY: ComponentClassification.TAXABLE_EARNING,
    PayrollComponentKey.MEDICAL_TAX_EXEMPTION: ComponentClassification.TAXABLE_EARNING,
    PayrollComponentKey.BONUS: ComponentClassification.TAXABLE_EARNING,
    PayrollComponentKey.MEDICAL_ALLOWANCE: ComponentClassification.NON_TAXABLE_EARNING,
    PayrollComponentKey.TRAVEL_REIMBURSEMENT: ComponentClassification.NON_TAXABLE_EARNING,
    PayrollComponentKey.UTILITY_REIMBURSEMENT: ComponentClassification.NON_TAXABLE_EARNING,
    PayrollComponentKey.MEALS_REIMBURSEMENT: ComponentClassification.NON_TAXABLE_EARNING,
    PayrollComponentKey.MOBILE_REIMBURSEMENT: ComponentClassification.NON_TAXABLE_EARNING,
    PayrollComponentKey.EXPENSE_REIMBURSEMENT: ComponentClassification.NON_TAXABLE_EARNING,
    PayrollComponentKey.ADVANCE_LOAN: ComponentClassification.NON_TAXABLE_EARNING,
    PayrollComponentKey.INCOME_TAX: ComponentClassification.DEDUCTION,
    PayrollComponentKey.ADJUSTMENT: ComponentClassification.DEDUCTION,
    PayrollComponentKey.LOAN_REPAYMENT: ComponentClassification.DEDUCTION,
    PayrollComponentKey.PAID: ComponentClassification.SETTLEMENT,
}


# Statuses in which manual edits to inputs and expenses are rejected
EDIT_BLOCKED_STATUSES = frozenset({
    PayrollPeriodStatus.APPROVED,
    PayrollPeriodStatus.SENDING,
    PayrollPeriodStatus.SENT,
    PayrollPeriodStatus.LOCKED,
})
