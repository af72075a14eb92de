# hr_platform/modules/payroll/routes/period_routes.py

"""
Payroll period endpoints.

Provides the period lifecycle over HTTP:
- Create (or reuse) a month, optionally carrying forward a base period
- Read and edit inputs
- Recalculate, approve, lock
- E-signature hand-off and outcome
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from hr_platform.core.auth import User, require_payroll_access, require_payroll_write
from hr_platform.core.database import get_db
from ..enums.payroll_enums import PayrollPeriodStatus
from ..exceptions import PayrollException
from ..schemas.payroll_schemas import (
    ApprovePeriodRequest,
    CarryForwardRequest,
    CarryForwardResult,
    PeriodCreateRequest,
    PeriodCreateResponse,
    PeriodDetailResponse,
    PeriodInputsResponse,
    PeriodInputsUpdateRequest,
    PeriodResponse,
    RecalculateRequest,
    RecalculationResult,
    SignatureOutcomeRequest,
)
from ..services.payroll_calculation_engine import PayrollCalculationEngine
from ..services.payroll_period_service import PayrollPeriodService
from .helpers import payroll_http_error, unexpected_http_error

router = APIRouter()


def _inputs_response(service: PayrollPeriodService, period_id: int) -> PeriodInputsResponse:
    period, inputs, expenses = service.get_period_inputs(period_id)
    return PeriodInputsResponse(
        period_id=period.id,
        status=period.status,
        inputs=inputs,
        expenses=expenses,
    )


@router.get("", response_model=List[PeriodResponse])
async def list_periods(
    status: Optional[PayrollPeriodStatus] = Query(None, description="Filter by status"),
    limit: int = Query(24, ge=1, le=120),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_payroll_access),
):
    """List payroll periods, newest month first."""
    return PayrollPeriodService(db).list_periods(status=status, limit=limit, offset=offset)


@router.post("", response_model=PeriodCreateResponse)
async def create_period(
    request: PeriodCreateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_payroll_write),
):
    """
    Create the period for a month, or return the existing one.

    ## Request Body
    - **period_key**: Month as MM/YYYY
    - **carry_forward_from_period_id**: Optional base period whose inputs
      and expenses are copied into the new month

    ## Error Responses
    - **404**: Base period not found
    - **409**: Target period is not editable
    - **422**: Invalid period key
    """
    try:
        service = PayrollPeriodService(db)
        ref = service.create_or_reuse_period(request.period_key, actor_id=current_user.id)

        carry_forward = None
        if request.carry_forward_from_period_id is not None:
            carry_forward = service.carry_forward_period(
                request.carry_forward_from_period_id, ref.id, actor_id=current_user.id
            )
            ref = service._ref(service.get_period(ref.id), created=ref.created)

        return PeriodCreateResponse(period=ref, carry_forward=carry_forward)
    except PayrollException as e:
        raise payroll_http_error(e)
    except Exception as e:
        raise unexpected_http_error(db, e, "create payroll period")


@router.get("/{period_id}", response_model=PeriodDetailResponse)
async def get_period(
    period_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_payroll_access),
):
    """Period with its computed values, receipts and approval history."""
    try:
        return PayrollPeriodService(db).get_period(period_id)
    except PayrollException as e:
        raise payroll_http_error(e)


@router.get("/{period_id}/inputs", response_model=PeriodInputsResponse)
async def get_period_inputs(
    period_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_payroll_access),
):
    try:
        return _inputs_response(PayrollPeriodService(db), period_id)
    except PayrollException as e:
        raise payroll_http_error(e)


@router.put("/{period_id}/inputs", response_model=PeriodInputsResponse)
async def update_period_inputs(
    period_id: int,
    request: PeriodInputsUpdateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_payroll_write),
):
    """
    Apply manual input edits and optionally replace the expense entries.

    The period returns to DRAFT and must be recalculated.

    ## Error Responses
    - **409**: Period is APPROVED, SENDING, SENT or LOCKED
    - **422**: Unknown component key or non-numeric amount
    """
    try:
        service = PayrollPeriodService(db)
        service.update_inputs(
            period_id,
            request.inputs,
            expenses=request.expenses,
            actor_id=current_user.id,
        )
        return _inputs_response(service, period_id)
    except PayrollException as e:
        raise payroll_http_error(e)
    except Exception as e:
        raise unexpected_http_error(db, e, "update payroll inputs")


@router.post("/{period_id}/recalculate", response_model=RecalculationResult)
async def recalculate_period(
    period_id: int,
    request: Optional[RecalculateRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_payroll_write),
):
    """
    Recompute metrics, receipts and reconciliation mismatches.

    Mismatches are returned as data; the period still moves to CALCULATED.
    """
    try:
        tolerance = request.tolerance if request else None
        return PayrollCalculationEngine(db).recalculate_payroll_period(
            period_id, tolerance, actor_id=current_user.id
        )
    except PayrollException as e:
        raise payroll_http_error(e)
    except Exception as e:
        raise unexpected_http_error(db, e, "recalculate payroll period")


@router.post("/{period_id}/approve", response_model=PeriodResponse)
async def approve_period(
    period_id: int,
    request: Optional[ApprovePeriodRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_payroll_write),
):
    """
    Approve a CALCULATED period.

    ## Error Responses
    - **409**: Wrong status, or payroll names without a resolved identity
    """
    try:
        return PayrollPeriodService(db).approve_period(
            period_id, current_user.id, request.comment if request else None
        )
    except PayrollException as e:
        raise payroll_http_error(e)
    except Exception as e:
        raise unexpected_http_error(db, e, "approve payroll period")


@router.post("/{period_id}/lock", response_model=PeriodResponse)
async def lock_period(
    period_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_payroll_write),
):
    try:
        return PayrollPeriodService(db).lock_period(period_id, current_user.id)
    except PayrollException as e:
        raise payroll_http_error(e)
    except Exception as e:
        raise unexpected_http_error(db, e, "lock payroll period")


@router.post("/{period_id}/send", response_model=PeriodResponse)
async def send_period_for_signature(
    period_id: int,
    request: Optional[ApprovePeriodRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_payroll_write),
):
    """Hand an APPROVED period's receipts to the e-signature integration."""
    try:
        return PayrollPeriodService(db).submit_for_signature(
            period_id, current_user.id, request.comment if request else None
        )
    except PayrollException as e:
        raise payroll_http_error(e)
    except Exception as e:
        raise unexpected_http_error(db, e, "send payroll period for signature")


@router.post("/{period_id}/signature-outcome", response_model=PeriodResponse)
async def record_signature_outcome(
    period_id: int,
    request: SignatureOutcomeRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_payroll_write),
):
    try:
        return PayrollPeriodService(db).record_signature_outcome(
            period_id, request.delivered, current_user.id, request.comment
        )
    except PayrollException as e:
        raise payroll_http_error(e)
    except Exception as e:
        raise unexpected_http_error(db, e, "record signature outcome")


@router.post("/{period_id}/carry-forward", response_model=CarryForwardResult)
async def carry_forward_period(
    period_id: int,
    request: CarryForwardRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_payroll_write),
):
    """Replace this period's inputs and expenses with a copy of the base period's."""
    try:
        return PayrollPeriodService(db).carry_forward_period(
            request.base_period_id, period_id, actor_id=current_user.id
        )
    except PayrollException as e:
        raise payroll_http_error(e)
    except Exception as e:
        raise unexpected_http_error(db, e, "carry forward payroll period")
