# hr_platform/modules/payroll/routes/__init__.py

"""
Payroll Module Routes Package

This package contains API routes for the payroll period engine:
- Period lifecycle endpoints
- Workbook backfill
- Identity mapping management
- Financial year tax tables
"""

from .payroll_routes import router as payroll_router
from .period_routes import router as period_router
from .backfill_routes import router as backfill_router
from .mapping_routes import router as mapping_router
from .tax_routes import router as tax_router

__all__ = [
    "payroll_router",
    "period_router",
    "backfill_router",
    "mapping_router",
    "tax_router",
]
