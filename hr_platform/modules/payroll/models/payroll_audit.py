# hr_platform/modules/payroll/models/payroll_audit.py

"""
Approval trail for payroll period transitions.

Rows are append-only: every status change of a period (including the
automated approve/lock of a backfill) writes one event.
"""

from sqlalchemy import (
    Column, Integer, DateTime, Text, ForeignKey,
    Index, Enum as SQLEnum
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from hr_platform.core.database import Base
from ..enums.payroll_enums import PayrollPeriodStatus


class PayrollApprovalEvent(Base):
    """
    One status transition of a payroll period.

    Tracks who moved the period, from which status to which, and why.
    """
    __tablename__ = "payroll_approval_events"

    id = Column(Integer, primary_key=True, index=True)
    period_id = Column(Integer, ForeignKey("payroll_periods.id"), nullable=False)
    actor_id = Column(Integer, nullable=True)
    from_status = Column(
        SQLEnum(
            PayrollPeriodStatus,
            name="payroll_period_status",
            values_callable=lambda obj: [e.value for e in obj],
        ),
        nullable=True,
    )
    to_status = Column(
        SQLEnum(
            PayrollPeriodStatus,
            name="payroll_period_status",
            values_callable=lambda obj: [e.value for e in obj],
        ),
        nullable=False,
    )
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)

    period = relationship("PayrollPeriod", back_populates="approval_events")

    __table_args__ = (
        Index("idx_approval_event_period_created", "period_id", "created_at"),
    )
