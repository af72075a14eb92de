# hr_platform/modules/payroll/__init__.py

"""
Payroll Module - monthly payroll period engine

- Period lifecycle (DRAFT, CALCULATED, APPROVED, SENDING, SENT, LOCKED)
- Metric calculation, income tax estimation and net vs paid reconciliation
- Multi-month backfill from historical workbooks
- Payroll name to employee identity mapping
"""

from .routes.payroll_routes import router as payroll_router

__version__ = "1.0.0"
__all__ = ["payroll_router"]
