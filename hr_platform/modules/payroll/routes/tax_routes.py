# hr_platform/modules/payroll/routes/tax_routes.py

"""
Financial year and income tax bracket endpoints.

Payroll administrators maintain one bracket table per financial year;
income tax is estimated from the table of the year covering a period,
preferring the active year when two overlap.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from hr_platform.core.auth import User, require_payroll_access, require_payroll_write
from hr_platform.core.database import get_db
from ..exceptions import PayrollException
from ..schemas.payroll_schemas import (
    FinancialYearCreateRequest,
    FinancialYearResponse,
    TaxBracketInput,
    TaxBracketsReplaceRequest,
)
from ..services.payroll_tax_engine import PayrollTaxEngine, TaxBracket
from .helpers import payroll_http_error, unexpected_http_error

router = APIRouter()


def _brackets(items: List[TaxBracketInput]) -> List[TaxBracket]:
    return [TaxBracket(b.income_from, b.income_to, b.fixed_tax, b.tax_rate) for b in items]


@router.get("", response_model=List[FinancialYearResponse])
async def list_financial_years(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_payroll_access),
):
    """List financial years with their brackets, newest first."""
    try:
        return PayrollTaxEngine(db).list_financial_years()
    except Exception as e:
        raise unexpected_http_error(db, e, "list financial years")


@router.post("", response_model=FinancialYearResponse)
async def create_financial_year(
    request: FinancialYearCreateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_payroll_write),
):
    """
    Create an inactive financial year.

    ## Error Responses
    - **409**: A year with this label exists
    - **422**: end_date before start_date, or malformed brackets
    """
    try:
        return PayrollTaxEngine(db).create_financial_year(
            request.label,
            request.start_date,
            request.end_date,
            _brackets(request.brackets),
        )
    except PayrollException as e:
        raise payroll_http_error(e)
    except Exception as e:
        raise unexpected_http_error(db, e, "create financial year")


@router.get("/{financial_year_id}", response_model=FinancialYearResponse)
async def get_financial_year(
    financial_year_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_payroll_access),
):
    try:
        return PayrollTaxEngine(db).get_financial_year(financial_year_id)
    except PayrollException as e:
        raise payroll_http_error(e)


@router.post("/{financial_year_id}/activate", response_model=FinancialYearResponse)
async def activate_financial_year(
    financial_year_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_payroll_write),
):
    """Make this the active financial year, deactivating all others."""
    try:
        return PayrollTaxEngine(db).activate_financial_year(financial_year_id)
    except PayrollException as e:
        raise payroll_http_error(e)
    except Exception as e:
        raise unexpected_http_error(db, e, "activate financial year")


@router.put("/{financial_year_id}/brackets", response_model=FinancialYearResponse)
async def replace_tax_brackets(
    financial_year_id: int,
    request: TaxBracketsReplaceRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_payroll_write),
):
    """
    Replace the bracket table of a financial year.

    Already calculated periods keep their values until they are recalculated.

    ## Error Responses
    - **404**: Financial year not found
    - **422**: Overlapping, out of range or open-ended middle brackets
    """
    try:
        return PayrollTaxEngine(db).replace_tax_brackets(
            financial_year_id, _brackets(request.brackets)
        )
    except PayrollException as e:
        raise payroll_http_error(e)
    except Exception as e:
        raise unexpected_http_error(db, e, "replace tax brackets")
