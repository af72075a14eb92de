# hr_platform/modules/payroll/services/payroll_period_service.py

"""
Payroll period lifecycle operations.

Creation, manual input edits, approval, lock, e-signature hand-off and
carry forward. Status changes go through the period state machine so that
every transition leaves an approval event behind.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional, Sequence, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..enums.payroll_enums import (
    PayrollComponentKey,
    PayrollInputSourceMethod,
    PayrollPeriodStatus,
    PayrollReceiptStatus,
    PayrollSourceType,
)
from ..exceptions import (
    PayrollNotFoundError,
    PayrollPolicyError,
    PayrollValidationError,
)
from ..models.payroll_models import (
    PayrollComputedValue,
    PayrollExpenseEntry,
    PayrollInputValue,
    PayrollPeriod,
    PayrollReceipt,
)
from ..schemas.error_schemas import ErrorDetail, PayrollErrorCodes
from ..schemas.payroll_schemas import (
    CarryForwardResult,
    ExpenseEntryCreate,
    InputValueUpdate,
    PeriodRef,
)
from .identity_matcher import IdentityMatcher
from .normalizers import (
    parse_cell_number,
    parse_period_key,
    period_bounds,
    period_label_from_key,
    to_period_key,
)
from .period_state_machine import (
    apply_transition,
    assert_transition,
    ensure_editable,
    reset_to_draft,
)

logger = logging.getLogger(__name__)


def parse_component_key(value: Any) -> PayrollComponentKey:
    """
    Raises:
        PayrollValidationError: If the key is not a known component
    """
    try:
        return PayrollComponentKey(str(value).strip().upper())
    except ValueError:
        raise PayrollValidationError(
            f"Unknown component key: {value}",
            field="component_key",
            code=PayrollErrorCodes.INVALID_COMPONENT_KEY,
        )


def parse_amount(value: Any, field: str = "amount") -> Decimal:
    """
    Raises:
        PayrollValidationError: If the value is not numeric
    """
    amount = parse_cell_number(value)
    if amount is None:
        raise PayrollValidationError(
            f"Amount {value!r} is not numeric",
            field=field,
            code=PayrollErrorCodes.INVALID_AMOUNT,
        )
    return amount


class PayrollPeriodService:
    """Service for payroll period lifecycle management."""

    def __init__(self, db: Session):
        self.db = db

    def get_period(self, period_id: int) -> PayrollPeriod:
        period = self.db.query(PayrollPeriod).filter(PayrollPeriod.id == period_id).first()
        if not period:
            raise PayrollNotFoundError("Payroll period", period_id)
        return period

    def list_periods(
        self,
        status: Optional[PayrollPeriodStatus] = None,
        limit: int = 24,
        offset: int = 0,
    ) -> List[PayrollPeriod]:
        query = self.db.query(PayrollPeriod)
        if status is not None:
            query = query.filter(PayrollPeriod.status == status)
        return (
            query.order_by(PayrollPeriod.period_start.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def find_period_for_key(self, period_key: str) -> Optional[PayrollPeriod]:
        start, end = period_bounds(period_key)
        return (
            self.db.query(PayrollPeriod)
            .filter(PayrollPeriod.period_start >= start, PayrollPeriod.period_start <= end)
            .first()
        )

    def create_or_reuse_period(
        self,
        period_key: str,
        actor_id: Optional[int] = None,
        source_type: PayrollSourceType = PayrollSourceType.MANUAL,
    ) -> PeriodRef:
        """
        Return the period covering a month, creating it when missing.

        Args:
            period_key: Month as MM/YYYY (M-YYYY and ISO dates are accepted)
            actor_id: Creator recorded on a new period
            source_type: Source type of a new period

        Returns:
            PeriodRef with ``created`` telling whether a row was inserted

        Raises:
            PayrollValidationError: If the key is not a valid month
        """
        key = parse_period_key(period_key)
        if key is None:
            raise PayrollValidationError(
                f"Invalid period key: {period_key}",
                field="period_key",
                code=PayrollErrorCodes.INVALID_PERIOD_KEY,
            )

        existing = self.find_period_for_key(key)
        if existing:
            return self._ref(existing, created=False)

        start, end = period_bounds(key)
        period = PayrollPeriod(
            label=period_label_from_key(key),
            period_start=start,
            period_end=end,
            status=PayrollPeriodStatus.DRAFT,
            source_type=source_type,
            created_by_id=actor_id,
        )
        self.db.add(period)
        try:
            self.db.commit()
        except IntegrityError:
            # Another request created the month first
            self.db.rollback()
            existing = self.find_period_for_key(key)
            if existing is None:
                raise
            return self._ref(existing, created=False)

        self.db.refresh(period)
        logger.info("Created payroll period %s (id=%s)", key, period.id)
        return self._ref(period, created=True)

    @staticmethod
    def _ref(period: PayrollPeriod, created: bool) -> PeriodRef:
        return PeriodRef(
            id=period.id,
            period_key=to_period_key(period.period_start),
            label=period.label,
            status=period.status,
            created=created,
        )

    def get_period_inputs(
        self, period_id: int
    ) -> Tuple[PayrollPeriod, List[PayrollInputValue], List[PayrollExpenseEntry]]:
        period = self.get_period(period_id)
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
        return period, inputs, expenses

    def update_inputs(
        self,
        period_id: int,
        inputs: Sequence[InputValueUpdate],
        expenses: Optional[Sequence[ExpenseEntryCreate]] = None,
        actor_id: Optional[int] = None,
    ) -> PayrollPeriod:
        """
        Apply a batch of manual input edits and optionally replace expenses.

        The whole payload is validated before anything is written. A
        successful edit returns the period to DRAFT.

        Raises:
            PayrollValidationError: On an unknown component key or non-numeric amount
            PayrollPolicyError: If the period is APPROVED, SENDING, SENT or LOCKED
        """
        period = self.get_period(period_id)

        # Last edit wins for a repeated (name, component) pair
        parsed_inputs = {}
        for item in inputs:
            name = item.payroll_name.strip()
            if not name:
                raise PayrollValidationError("Payroll name is required", field="payroll_name")
            component_key = parse_component_key(item.component_key)
            parsed_inputs[(name, component_key)] = (parse_amount(item.amount), item)
        parsed_expenses = None
        if expenses is not None:
            parsed_expenses = [(parse_amount(e.amount), e) for e in expenses]

        ensure_editable(period)

        now = datetime.utcnow()
        for (name, component_key), (amount, item) in parsed_inputs.items():
            existing = self.db.query(PayrollInputValue).filter(
                PayrollInputValue.period_id == period.id,
                PayrollInputValue.payroll_name == name,
                PayrollInputValue.component_key == component_key,
            ).first()

            provenance = {
                "edited_by_id": actor_id,
                "edited_at": now.isoformat(),
                "previous_amount": str(existing.amount) if existing else None,
            }
            if existing:
                existing.is_override = (
                    existing.is_override
                    or existing.source_method != PayrollInputSourceMethod.MANUAL
                )
                existing.amount = amount
                existing.source_method = PayrollInputSourceMethod.MANUAL
                existing.note = item.note
                existing.provenance_json = provenance
                if item.user_id is not None:
                    existing.user_id = item.user_id
            else:
                self.db.add(PayrollInputValue(
                    period_id=period.id,
                    payroll_name=name,
                    user_id=item.user_id,
                    component_key=component_key,
                    amount=amount,
                    source_method=PayrollInputSourceMethod.MANUAL,
                    is_override=False,
                    note=item.note,
                    provenance_json=provenance,
                ))

        if parsed_expenses is not None:
            self.db.query(PayrollExpenseEntry).filter(
                PayrollExpenseEntry.period_id == period.id
            ).delete(synchronize_session=False)
            for amount, entry in parsed_expenses:
                self.db.add(PayrollExpenseEntry(
                    period_id=period.id,
                    payroll_name=(entry.payroll_name or "").strip() or None,
                    user_id=entry.user_id,
                    category_key=entry.category_key,
                    description=entry.description,
                    amount=amount,
                    sheet_name=entry.sheet_name,
                    row_ref=entry.row_ref,
                    entered_by_id=actor_id,
                ))

        reset_to_draft(self.db, period, actor_id, "Manual input edit")
        self.db.commit()
        self.db.refresh(period)
        return period

    def update_input_value(
        self,
        period_id: int,
        payroll_name: str,
        component_key: str,
        amount: Any,
        note: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> PayrollInputValue:
        """Upsert a single (payroll name, component) amount."""
        self.update_inputs(
            period_id,
            [InputValueUpdate(
                payroll_name=payroll_name,
                component_key=component_key,
                amount=amount,
                note=note,
            )],
            actor_id=actor_id,
        )
        return self.db.query(PayrollInputValue).filter(
            PayrollInputValue.period_id == period_id,
            PayrollInputValue.payroll_name == payroll_name.strip(),
            PayrollInputValue.component_key == parse_component_key(component_key),
        ).one()

    def approve_period(
        self, period_id: int, actor_id: Optional[int], comment: Optional[str] = None
    ) -> PayrollPeriod:
        """
        Approve a calculated period.

        Approving an already APPROVED period is a no-op.

        Raises:
            PayrollPolicyError: If the period is not CALCULATED or has
                payroll names without a resolved identity
        """
        period = self.get_period(period_id)
        if PayrollPeriodStatus(period.status) == PayrollPeriodStatus.APPROVED:
            return period

        assert_transition(period, PayrollPeriodStatus.APPROVED)

        blocked = IdentityMatcher(self.db).find_blocked_payroll_names(period.id)
        if blocked:
            raise PayrollPolicyError(
                f"Period {to_period_key(period.period_start)} has {len(blocked)} "
                f"unresolved payroll names",
                code=PayrollErrorCodes.UNRESOLVED_IDENTITIES,
                details=[
                    ErrorDetail(field="payroll_name", message=name,
                                code=PayrollErrorCodes.UNRESOLVED_IDENTITIES)
                    for name in blocked
                ],
            )

        period.approved_by_id = actor_id
        period.approved_at = datetime.utcnow()
        apply_transition(self.db, period, PayrollPeriodStatus.APPROVED, actor_id, comment)
        self.db.commit()
        self.db.refresh(period)
        logger.info("Period %s approved by %s", period.label, actor_id)
        return period

    def lock_period(
        self, period_id: int, actor_id: Optional[int], comment: Optional[str] = None
    ) -> PayrollPeriod:
        """
        Lock an APPROVED or SENT period. Locked periods are immutable.

        Raises:
            PayrollPolicyError: From any other status
        """
        period = self.get_period(period_id)
        apply_transition(self.db, period, PayrollPeriodStatus.LOCKED, actor_id, comment)
        period.locked_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(period)
        logger.info("Period %s locked by %s", period.label, actor_id)
        return period

    def _set_receipt_status(self, period_id: int, status: PayrollReceiptStatus) -> int:
        return self.db.query(PayrollReceipt).filter(
            PayrollReceipt.period_id == period_id
        ).update({PayrollReceipt.status: status}, synchronize_session=False)

    def submit_for_signature(
        self, period_id: int, actor_id: Optional[int], comment: Optional[str] = None
    ) -> PayrollPeriod:
        """
        Hand an APPROVED period's receipts to the e-signature integration.

        Raises:
            PayrollPolicyError: If the period is not APPROVED or has no receipts
        """
        period = self.get_period(period_id)
        assert_transition(period, PayrollPeriodStatus.SENDING)

        receipt_count = self.db.query(PayrollReceipt).filter(
            PayrollReceipt.period_id == period.id
        ).count()
        if receipt_count == 0:
            raise PayrollPolicyError(
                f"Period {to_period_key(period.period_start)} has no receipts to send",
                code=PayrollErrorCodes.NO_RECEIPTS,
                status=PayrollPeriodStatus(period.status).value,
            )

        self._set_receipt_status(period.id, PayrollReceiptStatus.SENDING)
        apply_transition(
            self.db, period, PayrollPeriodStatus.SENDING, actor_id,
            comment or f"Submitted {receipt_count} receipts for signature",
        )
        self.db.commit()
        self.db.refresh(period)
        return period

    def record_signature_outcome(
        self,
        period_id: int,
        delivered: bool,
        actor_id: Optional[int] = None,
        comment: Optional[str] = None,
    ) -> PayrollPeriod:
        """
        Apply the e-signature result: SENT on delivery, back to APPROVED otherwise.

        Raises:
            PayrollPolicyError: If the period is not SENDING
        """
        period = self.get_period(period_id)
        if delivered:
            target, receipt_status = PayrollPeriodStatus.SENT, PayrollReceiptStatus.SENT
            default_comment = "Signature envelope delivered"
        else:
            target, receipt_status = PayrollPeriodStatus.APPROVED, PayrollReceiptStatus.FAILED
            default_comment = "Signature envelope delivery failed"

        if PayrollPeriodStatus(period.status) != PayrollPeriodStatus.SENDING:
            raise PayrollPolicyError(
                f"Period {to_period_key(period.period_start)} is "
                f"{PayrollPeriodStatus(period.status).value}; no signature is pending",
                code=PayrollErrorCodes.INVALID_STATUS_TRANSITION,
                status=PayrollPeriodStatus(period.status).value,
            )

        self._set_receipt_status(period.id, receipt_status)
        apply_transition(self.db, period, target, actor_id, comment or default_comment)
        self.db.commit()
        self.db.refresh(period)
        return period

    def carry_forward_period(
        self, base_period_id: int, target_period_id: int, actor_id: Optional[int] = None
    ) -> CarryForwardResult:
        """
        Copy a base period's inputs and expenses into an editable target period.

        The target's previous content, computed values and receipts are
        discarded and it returns to DRAFT.

        Raises:
            PayrollValidationError: If base and target are the same period
            PayrollPolicyError: If the target period is not editable
        """
        if base_period_id == target_period_id:
            raise PayrollValidationError(
                "A period cannot be carried forward into itself",
                field="base_period_id",
            )
        base = self.get_period(base_period_id)
        target = self.get_period(target_period_id)
        ensure_editable(target)

        base_inputs = self.db.query(PayrollInputValue).filter(
            PayrollInputValue.period_id == base.id
        ).order_by(PayrollInputValue.id).all()
        base_expenses = self.db.query(PayrollExpenseEntry).filter(
            PayrollExpenseEntry.period_id == base.id
        ).order_by(PayrollExpenseEntry.id).all()

        for model in (PayrollInputValue, PayrollExpenseEntry, PayrollComputedValue, PayrollReceipt):
            self.db.query(model).filter(model.period_id == target.id).delete(
                synchronize_session=False
            )

        note = f"Carried forward from {base.label}"
        for row in base_inputs:
            self.db.add(PayrollInputValue(
                period_id=target.id,
                payroll_name=row.payroll_name,
                user_id=row.user_id,
                component_key=row.component_key,
                amount=row.amount,
                source_sheet=row.source_sheet,
                source_cell=row.source_cell,
                source_method=PayrollInputSourceMethod.CARRY_FORWARD,
                is_override=False,
                note=note,
                provenance_json={
                    "carried_forward_from_period_id": base.id,
                    "original_input_id": row.id,
                },
            ))
        for row in base_expenses:
            self.db.add(PayrollExpenseEntry(
                period_id=target.id,
                payroll_name=row.payroll_name,
                user_id=row.user_id,
                category_key=row.category_key,
                description=row.description,
                amount=row.amount,
                sheet_name=row.sheet_name,
                row_ref=row.row_ref,
                entered_by_id=actor_id,
            ))

        reset_to_draft(self.db, target, actor_id, note)
        target.source_type = PayrollSourceType.CARRY_FORWARD
        target.summary_json = {
            "carried_forward_from_period_id": base.id,
            "carried_forward_at": datetime.utcnow().isoformat(),
            "carried_input_count": len(base_inputs),
            "carried_expense_count": len(base_expenses),
        }
        self.db.commit()

        logger.info(
            "Carried forward %d inputs and %d expenses from %s to %s",
            len(base_inputs), len(base_expenses), base.label, target.label,
        )
        return CarryForwardResult(
            base_period_id=base.id,
            target_period_id=target.id,
            carried_input_count=len(base_inputs),
            carried_expense_count=len(base_expenses),
        )
