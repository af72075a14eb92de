# hr_platform/modules/payroll/routes/mapping_routes.py

"""
Identity mapping endpoints.

Lists the payroll name alias table and lets payroll staff bind an
ambiguous or unresolved name to an employee by hand.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from hr_platform.core.auth import User, require_payroll_access, require_payroll_write
from hr_platform.core.database import get_db
from ..enums.payroll_enums import PayrollIdentityStatus
from ..exceptions import PayrollException
from ..schemas.payroll_schemas import IdentityMappingResolveRequest, IdentityMappingResponse
from ..services.identity_matcher import IdentityMatcher
from .helpers import payroll_http_error, unexpected_http_error

router = APIRouter()


@router.get("", response_model=List[IdentityMappingResponse])
async def list_identity_mappings(
    status: Optional[PayrollIdentityStatus] = Query(None, description="Filter by status"),
    limit: int = Query(200, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_payroll_access),
):
    """List aliases ordered by normalized name."""
    return IdentityMatcher(db).list_mappings(status=status, limit=limit, offset=offset)


@router.put("/{mapping_id}", response_model=IdentityMappingResponse)
async def resolve_identity_mapping(
    mapping_id: int,
    request: IdentityMappingResolveRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_payroll_write),
):
    """
    Bind an alias to an employee; the alias becomes MANUAL_MATCHED.

    ## Error Responses
    - **404**: Mapping not found
    - **422**: User is not an employee
    """
    try:
        return IdentityMatcher(db).resolve_identity_mapping(
            mapping_id, request.user_id, request.notes
        )
    except PayrollException as e:
        raise payroll_http_error(e)
    except Exception as e:
        raise unexpected_http_error(db, e, "resolve identity mapping")
