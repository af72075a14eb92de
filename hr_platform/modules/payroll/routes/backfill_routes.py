# hr_platform/modules/payroll/routes/backfill_routes.py

"""
Historical workbook backfill endpoint.
"""

import logging
from decimal import Decimal

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from hr_platform.core.auth import User, require_payroll_write
from hr_platform.core.config import settings
from hr_platform.core.database import get_db
from ..exceptions import PayrollException
from ..schemas.error_schemas import ErrorResponse, PayrollErrorCodes
from ..schemas.payroll_schemas import PayrollBackfillOptions, PayrollBackfillSummary
from ..services.backfill_service import PayrollBackfillService
from .helpers import payroll_http_error, unexpected_http_error

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=PayrollBackfillSummary)
async def run_backfill(
    file: UploadFile = File(..., description="Structured payroll workbook"),
    months: int = Form(settings.payroll_backfill_default_months),
    tolerance: Decimal = Form(Decimal(str(settings.payroll_reconciliation_tolerance))),
    lock_approved: bool = Form(settings.payroll_backfill_lock_approved),
    use_employee_roster_names: bool = Form(settings.payroll_backfill_use_roster_names),
    overwrite_locked: bool = Form(False),
    persist_import_rows: bool = Form(False),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_payroll_write),
):
    """
    Import the most recent months of a historical payroll workbook.

    ## Form Fields
    - **file**: Workbook document
    - **months**: Number of most recent months to import (1-120)
    - **tolerance**: Net vs paid reconciliation tolerance
    - **lock_approved**: Approve and lock every month that calculates cleanly
    - **use_employee_roster_names**: Alias workbook names onto the roster round-robin
    - **overwrite_locked**: Replace months that are already LOCKED
    - **persist_import_rows**: Keep the raw workbook rows for audit

    ## Response
    The run summary. Months blocked by unresolved names or failed
    recalculation are reported in the summary, not as an error.

    ## Error Responses
    - **409**: Every candidate month is locked
    - **413**: Workbook too large
    - **422**: Unsupported file type, no period keys in the workbook, or empty roster
    """
    file_name = file.filename or ""
    extension = file_name.rsplit(".", 1)[-1].lower() if "." in file_name else ""
    if extension not in {t.lower() for t in settings.allowed_file_types}:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=ErrorResponse(
                error="UnsupportedFileType",
                message=f"Unsupported workbook type '{extension or file_name}'. "
                f"Allowed: {', '.join(settings.allowed_file_types)}",
                code=PayrollErrorCodes.INVALID_DATA_FORMAT,
            ).model_dump(mode="json"),
        )

    buffer = await file.read()
    if len(buffer) > settings.max_upload_size_mb * 1024 * 1024:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=ErrorResponse(
                error="PayloadTooLarge",
                message=f"Workbook exceeds {settings.max_upload_size_mb} MB",
                code=PayrollErrorCodes.INVALID_DATA_FORMAT,
            ).model_dump(mode="json"),
        )

    try:
        options = PayrollBackfillOptions(
            buffer=buffer,
            actor_id=current_user.id,
            file_name=file.filename or "payroll-workbook.json",
            months=months,
            tolerance=tolerance,
            lock_approved=lock_approved,
            use_employee_roster_names=use_employee_roster_names,
            overwrite_locked=overwrite_locked,
            persist_import_rows=persist_import_rows,
        )
        return PayrollBackfillService(db).run_payroll_backfill(options)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=ErrorResponse(
                error="ValidationError",
                message="Invalid backfill options",
                code=PayrollErrorCodes.INVALID_DATA_FORMAT,
                details=[
                    {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                    for err in e.errors()
                ],
            ).model_dump(mode="json"),
        )
    except PayrollException as e:
        raise payroll_http_error(e)
    except Exception as e:
        raise unexpected_http_error(db, e, "run payroll backfill")
