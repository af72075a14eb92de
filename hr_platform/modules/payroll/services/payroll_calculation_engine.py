# hr_platform/modules/payroll/services/payroll_calculation_engine.py

"""
Payroll period calculation and reconciliation.

Aggregates a period's input values and expense entries into per-name
metrics, receipt snapshots and NET_VS_PAID mismatches. Computed values and
receipts are fully derived and replaced on every run.
"""

import logging
from collections import OrderedDict
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from hr_platform.core.config import settings
from hr_platform.core.database_utils import bulk_insert_chunked
from ..enums.payroll_enums import (
    COMPONENT_CLASSIFICATION,
    ComponentClassification,
    PayrollComponentKey as C,
    PayrollMetricKey as M,
    PayrollPeriodStatus,
    PayrollReceiptStatus,
)
from ..exceptions import PayrollNotFoundError, PayrollPolicyError
from ..models.payroll_import import PayrollIdentityMapping
from ..models.payroll_models import (
    PayrollComputedValue,
    PayrollExpenseEntry,
    PayrollInputValue,
    PayrollPeriod,
    PayrollReceipt,
)
from ..schemas.error_schemas import PayrollErrorCodes
from ..schemas.payroll_schemas import (
    ComputedMetric,
    RecalculationResult,
    ReconciliationMismatch,
)
from .normalizers import normalize_payroll_name, period_key_to_date, previous_period_key, to_period_key
from .payroll_tax_engine import PayrollTaxEngine
from .period_state_machine import apply_transition
from .reconciliation import reconcile_net_vs_paid

logger = logging.getLogger(__name__)

FORMULA_VERSION = "payroll-v1"
CENT = Decimal("0.01")
ZERO = Decimal("0")


def quantize_amount(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _money(value: Decimal) -> str:
    return str(quantize_amount(value))


def sum_by_classification(
    bucket: Dict[C, Decimal], classification: ComponentClassification
) -> Decimal:
    return sum(
        (amount for key, amount in bucket.items()
         if COMPONENT_CLASSIFICATION[key] == classification),
        ZERO,
    )


class PayrollCalculationEngine:
    """Deterministic per-period payroll computation."""

    def __init__(self, db: Session, tax_engine: Optional[PayrollTaxEngine] = None):
        self.db = db
        self.tax_engine = tax_engine or PayrollTaxEngine(db)

    def _get_period(self, period_id: int) -> PayrollPeriod:
        period = self.db.query(PayrollPeriod).filter(PayrollPeriod.id == period_id).first()
        if not period:
            raise PayrollNotFoundError("Payroll period", period_id)
        return period

    def _previous_balances(self, period_key: str) -> Dict[str, Decimal]:
        """BALANCE per payroll name of the immediately preceding calendar month."""
        previous_start = period_key_to_date(previous_period_key(period_key))
        previous = self.db.query(PayrollPeriod).filter(
            PayrollPeriod.period_start == previous_start
        ).first()
        if not previous:
            return {}

        rows = (
            self.db.query(PayrollComputedValue.payroll_name, PayrollComputedValue.amount)
            .filter(
                PayrollComputedValue.period_id == previous.id,
                PayrollComputedValue.metric_key == M.BALANCE,
            )
            .all()
        )
        return {row.payroll_name: Decimal(row.amount) for row in rows}

    def recalculate_payroll_period(
        self,
        period_id: int,
        tolerance: Optional[Decimal] = None,
        actor_id: Optional[int] = None,
        commit: bool = True,
    ) -> RecalculationResult:
        """
        Recompute all metrics, receipts and mismatches for a period.

        Args:
            period_id: Payroll period to recalculate
            tolerance: Allowed |net - paid| deviation before a mismatch is reported
            actor_id: User triggering the run, recorded on the approval event
            commit: Commit the replacement; callers composing a larger
                transaction pass False and commit themselves

        Returns:
            RecalculationResult with the computed metrics and mismatches

        Raises:
            PayrollNotFoundError: If the period does not exist
            PayrollPolicyError: If the period is LOCKED
        """
        tolerance = Decimal(str(tolerance if tolerance is not None
                                else settings.payroll_reconciliation_tolerance))
        period = self._get_period(period_id)
        period_key = to_period_key(period.period_start)

        if PayrollPeriodStatus(period.status) == PayrollPeriodStatus.LOCKED:
            raise PayrollPolicyError(
                f"Period {period_key} is LOCKED and cannot be recalculated",
                code=PayrollErrorCodes.INVALID_STATUS_TRANSITION,
                status=PayrollPeriodStatus.LOCKED.value,
            )

        inputs = (
            self.db.query(PayrollInputValue)
            .filter(PayrollInputValue.period_id == period_id)
            .order_by(PayrollInputValue.payroll_name, PayrollInputValue.component_key)
            .all()
        )
        expenses = (
            self.db.query(PayrollExpenseEntry)
            .filter(PayrollExpenseEntry.period_id == period_id)
            .order_by(PayrollExpenseEntry.id)
            .all()
        )

        buckets: Dict[str, Dict[C, Decimal]] = OrderedDict()
        user_by_name: Dict[str, Optional[int]] = {}
        for row in inputs:
            bucket = buckets.setdefault(row.payroll_name, {})
            key = C(row.component_key)
            bucket[key] = bucket.get(key, ZERO) + Decimal(row.amount)
            if row.user_id and not user_by_name.get(row.payroll_name):
                user_by_name[row.payroll_name] = row.user_id

        unattributed_expense_total = ZERO
        for entry in expenses:
            if not entry.payroll_name:
                unattributed_expense_total += Decimal(entry.amount)
                continue
            bucket = buckets.setdefault(entry.payroll_name, {})
            bucket[C.EXPENSE_REIMBURSEMENT] = (
                bucket.get(C.EXPENSE_REIMBURSEMENT, ZERO) + Decimal(entry.amount)
            )
            if entry.user_id and not user_by_name.get(entry.payroll_name):
                user_by_name[entry.payroll_name] = entry.user_id

        names = sorted(buckets)
        unmapped_keys = {
            normalize_payroll_name(name) for name in names if not user_by_name.get(name)
        }
        if unmapped_keys:
            mapped = (
                self.db.query(PayrollIdentityMapping.normalized_payroll_name, PayrollIdentityMapping.user_id)
                .filter(PayrollIdentityMapping.normalized_payroll_name.in_(list(unmapped_keys)))
                .all()
            )
            user_by_key = {row.normalized_payroll_name: row.user_id for row in mapped}
            for name in names:
                if not user_by_name.get(name):
                    user_by_name[name] = user_by_key.get(normalize_payroll_name(name))

        previous_balances = self._previous_balances(period_key)
        financial_year = self.tax_engine.get_financial_year_for_date(period.period_start)
        brackets = self.tax_engine.brackets_for_date(period.period_start)

        computed_rows: List[dict] = []
        receipt_rows: List[dict] = []
        computed: List[ComputedMetric] = []
        mismatches: List[ReconciliationMismatch] = []

        for name in names:
            bucket = dict(buckets[name])
            user_id = user_by_name.get(name)

            if C.MEDICAL_TAX_EXEMPTION not in bucket:
                bucket[C.MEDICAL_TAX_EXEMPTION] = -bucket.get(C.MEDICAL_ALLOWANCE, ZERO)

            income_tax_estimated = C.INCOME_TAX not in bucket
            if income_tax_estimated:
                bucket[C.INCOME_TAX] = self.tax_engine.estimate_monthly_income_tax(
                    period.period_start,
                    bucket.get(C.BASIC_SALARY, ZERO) + bucket.get(C.BONUS, ZERO),
                    brackets=brackets,
                )

            total_taxable = sum_by_classification(bucket, ComponentClassification.TAXABLE_EARNING)
            total_non_taxable = sum_by_classification(bucket, ComponentClassification.NON_TAXABLE_EARNING)
            total_deductions = sum_by_classification(bucket, ComponentClassification.DEDUCTION)
            paid = sum_by_classification(bucket, ComponentClassification.SETTLEMENT)

            total_earnings = total_taxable + total_non_taxable
            net_salary = total_earnings - total_deductions
            previous_balance = previous_balances.get(name, ZERO)
            balance = previous_balance + net_salary - paid

            metrics = OrderedDict([
                (M.TOTAL_TAXABLE_SALARY, total_taxable),
                (M.TOTAL_EARNINGS, total_earnings),
                (M.TOTAL_DEDUCTIONS, total_deductions),
                (M.NET_SALARY, net_salary),
                (M.BALANCE, balance),
            ])

            lineage = {
                "period_key": period_key,
                "components": sorted(key.value for key in buckets[name]),
                "income_tax_estimated": income_tax_estimated,
                "tax_financial_year_id": financial_year.id if financial_year and brackets else None,
                "previous_balance": _money(previous_balance),
            }
            for metric_key, amount in metrics.items():
                amount = quantize_amount(amount)
                computed_rows.append({
                    "period_id": period.id,
                    "payroll_name": name,
                    "user_id": user_id,
                    "metric_key": metric_key,
                    "amount": amount,
                    "formula_key": metric_key.value,
                    "formula_version": FORMULA_VERSION,
                    "lineage_json": lineage,
                })
                computed.append(ComputedMetric(
                    payroll_name=name, user_id=user_id, metric_key=metric_key.value, amount=amount
                ))

            if C.PAID in buckets[name]:
                mismatch = reconcile_net_vs_paid(
                    name, period_key, quantize_amount(net_salary), quantize_amount(paid), tolerance
                )
                if mismatch:
                    mismatches.append(mismatch)

            receipt_rows.append({
                "period_id": period.id,
                "payroll_name": name,
                "user_id": user_id,
                "receipt_json": self._build_receipt(period_key, name, bucket, metrics, previous_balance),
                "status": PayrollReceiptStatus.READY,
                "version": 1,
            })

        chunk_size = settings.payroll_backfill_chunk_size
        self.db.query(PayrollComputedValue).filter(
            PayrollComputedValue.period_id == period.id
        ).delete(synchronize_session=False)
        self.db.query(PayrollReceipt).filter(
            PayrollReceipt.period_id == period.id
        ).delete(synchronize_session=False)
        bulk_insert_chunked(self.db, PayrollComputedValue, computed_rows, chunk_size)
        bulk_insert_chunked(self.db, PayrollReceipt, receipt_rows, chunk_size)

        apply_transition(
            self.db, period, PayrollPeriodStatus.CALCULATED, actor_id, "Recalculated payroll period"
        )
        period.summary_json = {
            "period_key": period_key,
            "tolerance": str(tolerance),
            "payroll_count": len(names),
            "mismatch_count": len(mismatches),
            "mismatches": [m.model_dump(mode="json") for m in mismatches],
            "unattributed_expense_total": _money(unattributed_expense_total),
            "formula_version": FORMULA_VERSION,
            "computed_at": datetime.utcnow().isoformat(),
        }

        if commit:
            self.db.commit()
        else:
            self.db.flush()

        logger.info(
            "Recalculated period %s: %d names, %d mismatches",
            period_key,
            len(names),
            len(mismatches),
        )
        return RecalculationResult(
            period_id=period.id,
            period_key=period_key,
            payroll_count=len(names),
            computed_count=len(computed_rows),
            mismatch_count=len(mismatches),
            computed=computed,
            mismatches=mismatches,
            unattributed_expense_total=quantize_amount(unattributed_expense_total),
        )

    @staticmethod
    def _build_receipt(
        period_key: str,
        payroll_name: str,
        bucket: Dict[C, Decimal],
        metrics: Dict[M, Decimal],
        previous_balance: Decimal,
    ) -> dict:
        def amount(key: C) -> str:
            return _money(bucket.get(key, ZERO))

        return {
            "period_key": period_key,
            "payroll_name": payroll_name,
            "earnings": {
                "basic_salary": amount(C.BASIC_SALARY),
                "medical_tax_exemption": amount(C.MEDICAL_TAX_EXEMPTION),
                "bonus": amount(C.BONUS),
                "medical_allowance": amount(C.MEDICAL_ALLOWANCE),
                "travel_reimbursement": amount(C.TRAVEL_REIMBURSEMENT),
                "utility_reimbursement": amount(C.UTILITY_REIMBURSEMENT),
                "meals_reimbursement": amount(C.MEALS_REIMBURSEMENT),
                "mobile_reimbursement": amount(C.MOBILE_REIMBURSEMENT),
                "expense_reimbursement": amount(C.EXPENSE_REIMBURSEMENT),
                "advance_loan": amount(C.ADVANCE_LOAN),
                "total_earnings": _money(metrics[M.TOTAL_EARNINGS]),
            },
            "deductions": {
                "income_tax": amount(C.INCOME_TAX),
                "adjustment": amount(C.ADJUSTMENT),
                "loan_repayment": amount(C.LOAN_REPAYMENT),
                "total_deductions": _money(metrics[M.TOTAL_DEDUCTIONS]),
            },
            "net": {
                "net_salary": _money(metrics[M.NET_SALARY]),
                "paid": amount(C.PAID),
                "previous_balance": _money(previous_balance),
                "balance": _money(metrics[M.BALANCE]),
            },
        }
