# hr_platform/modules/payroll/services/period_state_machine.py

"""
Legal status transitions of a payroll period.

Every transition goes through :func:`apply_transition`, which validates it
against the transition table and appends a PayrollApprovalEvent.
"""

from datetime import date
from typing import Dict, FrozenSet, Optional

from sqlalchemy.orm import Session

from ..enums.payroll_enums import EDIT_BLOCKED_STATUSES, PayrollPeriodStatus
from ..exceptions import PayrollPolicyError
from ..models.payroll_audit import PayrollApprovalEvent
from ..models.payroll_models import PayrollPeriod
from ..schemas.error_schemas import PayrollErrorCodes

S = PayrollPeriodStatus

ALLOWED_TRANSITIONS: Dict[PayrollPeriodStatus, FrozenSet[PayrollPeriodStatus]] = {
    S.DRAFT: frozenset({S.CALCULATED}),
    S.CALCULATED: frozenset({S.CALCULATED, S.DRAFT, S.APPROVED}),
    S.APPROVED: frozenset({S.CALCULATED, S.SENDING, S.LOCKED}),
    S.SENDING: frozenset({S.CALCULATED, S.SENT, S.APPROVED}),
    S.SENT: frozenset({S.CALCULATED, S.LOCKED}),
    S.LOCKED: frozenset(),
}


def period_key_of(period: PayrollPeriod) -> str:
    start: date = period.period_start
    return f"{start.month:02d}/{start.year}"


def can_transition(from_status: PayrollPeriodStatus, to_status: PayrollPeriodStatus) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(PayrollPeriodStatus(from_status), frozenset())


def assert_transition(period: PayrollPeriod, to_status: PayrollPeriodStatus) -> None:
    """
    Raises:
        PayrollPolicyError: If the period cannot move to ``to_status``
    """
    current = PayrollPeriodStatus(period.status)
    if not can_transition(current, to_status):
        raise PayrollPolicyError(
            f"Period {period_key_of(period)} is {current.value}; "
            f"cannot move to {PayrollPeriodStatus(to_status).value}",
            code=PayrollErrorCodes.INVALID_STATUS_TRANSITION,
            status=current.value,
        )


def ensure_editable(period: PayrollPeriod) -> None:
    """
    Raises:
        PayrollPolicyError: If manual input edits are blocked in the current status
    """
    current = PayrollPeriodStatus(period.status)
    if current in EDIT_BLOCKED_STATUSES:
        raise PayrollPolicyError(
            f"Period {period_key_of(period)} is {current.value}; inputs cannot be edited",
            code=PayrollErrorCodes.PERIOD_NOT_EDITABLE,
            status=current.value,
        )


def record_event(
    db: Session,
    period: PayrollPeriod,
    from_status: Optional[PayrollPeriodStatus],
    to_status: PayrollPeriodStatus,
    actor_id: Optional[int],
    comment: Optional[str] = None,
) -> PayrollApprovalEvent:
    event = PayrollApprovalEvent(
        period_id=period.id,
        actor_id=actor_id,
        from_status=from_status,
        to_status=to_status,
        comment=comment,
    )
    db.add(event)
    return event


def apply_transition(
    db: Session,
    period: PayrollPeriod,
    to_status: PayrollPeriodStatus,
    actor_id: Optional[int],
    comment: Optional[str] = None,
) -> PayrollApprovalEvent:
    """Validate, set the new status and append the approval event. Does not commit."""
    assert_transition(period, to_status)
    from_status = PayrollPeriodStatus(period.status)
    period.status = to_status
    return record_event(db, period, from_status, to_status, actor_id, comment)


def reset_to_draft(
    db: Session,
    period: PayrollPeriod,
    actor_id: Optional[int],
    comment: str,
    allow_locked: bool = False,
) -> Optional[PayrollApprovalEvent]:
    """
    Return a period to DRAFT after its content was replaced.

    LOCKED periods are only reset when ``allow_locked`` is set (overwrite
    backfill). No event is written when the period is already DRAFT.
    """
    current = PayrollPeriodStatus(period.status)
    if current == S.DRAFT:
        return None
    if current == S.LOCKED and not allow_locked:
        raise PayrollPolicyError(
            f"Period {period_key_of(period)} is LOCKED and cannot be reset",
            code=PayrollErrorCodes.INVALID_STATUS_TRANSITION,
            status=current.value,
        )
    period.status = S.DRAFT
    if current == S.LOCKED:
        period.locked_at = None
    return record_event(db, period, current, S.DRAFT, actor_id, comment)
