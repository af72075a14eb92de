import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hr_platform.core.config import settings
from hr_platform.core.exceptions import register_exception_handlers

# ========== Payroll Management ==========
from hr_platform.modules.payroll import payroll_router

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="HR Platform - Payroll Period API",
    description="""
    Monthly payroll period engine.

    ## Features

    * **Payroll Periods** - Monthly lifecycle from DRAFT to LOCKED with an approval trail
    * **Calculation** - Gross, deductions, net, balance and income tax estimation
    * **Reconciliation** - Net salary checked against the workbook PAID amount
    * **Backfill** - Multi-month import of historical payroll workbooks
    * **Identity Mapping** - Payroll names bound to roster employees
    * **Tax Tables** - Financial years with their progressive income tax brackets

    ## Authentication

    All payroll endpoints require a bearer token carrying a payroll role
    (`admin`, `payroll_manager` or `hr`; writes need `admin` or `payroll_manager`).
    """,
    version="1.0.0",
    debug=settings.debug,
)

# Register exception handlers for consistent error responses
register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(payroll_router)


@app.on_event("startup")
async def startup_event():
    logger.info(
        "Payroll API starting (environment=%s, currency=%s, timezone=%s)",
        settings.environment,
        settings.payroll_default_currency,
        settings.payroll_default_timezone,
    )


@app.get("/")
def read_root():
    return {"message": "HR platform payroll backend is running"}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
