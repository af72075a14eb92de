# hr_platform/modules/payroll/routes/payroll_routes.py

"""
Main payroll routes combining all payroll module endpoints.

This router aggregates all payroll-related endpoints:
- Payroll periods and their lifecycle
- Historical workbook backfill
- Payroll name identity mappings
- Financial years and income tax brackets
"""

from fastapi import APIRouter
from datetime import datetime
from .period_routes import router as period_router
from .backfill_routes import router as backfill_router
from .mapping_routes import router as mapping_router
from .tax_routes import router as tax_router

# Create main payroll router
router = APIRouter(prefix="/api/payroll", tags=["Payroll"])

# Include sub-routers
router.include_router(period_router, prefix="/periods", tags=["Payroll Periods"])
router.include_router(backfill_router, prefix="/backfill", tags=["Payroll Backfill"])
router.include_router(mapping_router, prefix="/mappings", tags=["Payroll Identity Mappings"])
router.include_router(tax_router, prefix="/financial-years", tags=["Payroll Tax Tables"])


@router.get("/health")
async def payroll_health_check():
    """
    Health check endpoint for payroll module.

    Returns:
        dict: Health status of payroll module
    """
    return {
        "status": "healthy",
        "module": "payroll",
        "timestamp": datetime.utcnow().isoformat(),
    }
