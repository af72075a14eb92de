# hr_platform/modules/payroll/services/reconciliation.py

from decimal import Decimal
from typing import Optional

from ..enums.payroll_enums import ReconciliationSeverity
from ..schemas.payroll_schemas import ReconciliationMismatch

NET_VS_PAID = "NET_VS_PAID"
NET_VS_PAID_REASON = "Workbook paid amount deviates from computed net salary beyond tolerance."

# A deviation above this multiple of the tolerance is critical
CRITICAL_TOLERANCE_MULTIPLIER = 5


def reconcile_net_vs_paid(
    payroll_name: str,
    period_key: str,
    net_salary: Decimal,
    paid: Decimal,
    tolerance: Decimal,
) -> Optional[ReconciliationMismatch]:
    """
    Compare computed net salary with the amount actually paid.

    Returns:
        A mismatch when ``|net - paid|`` exceeds the tolerance, otherwise None
    """
    delta = Decimal(net_salary) - Decimal(paid)
    tolerance = Decimal(tolerance)
    if abs(delta) <= tolerance:
        return None

    severity = (
        ReconciliationSeverity.CRITICAL
        if abs(delta) > tolerance * CRITICAL_TOLERANCE_MULTIPLIER
        else ReconciliationSeverity.WARNING
    )
    return ReconciliationMismatch(
        payroll_name=payroll_name,
        period_key=period_key,
        check=NET_VS_PAID,
        expected=net_salary,
        actual=paid,
        delta=delta,
        severity=severity,
        reason=NET_VS_PAID_REASON,
    )
