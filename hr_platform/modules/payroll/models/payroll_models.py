# hr_platform/modules/payroll/models/payroll_models.py

from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    Date,
    DateTime,
    Text,
    Boolean,
    JSON,
    ForeignKey,
    Enum,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from hr_platform.core.database import Base
from hr_platform.core.mixins import TimestampMixin
from ..enums.payroll_enums import (
    PayrollPeriodStatus,
    PayrollSourceType,
    PayrollInputSourceMethod,
    PayrollComponentKey,
    PayrollMetricKey,
    PayrollReceiptStatus,
)


def _enum_values(obj):
    return [e.value for e in obj]


class PayrollPeriod(Base, TimestampMixin):
    """One payroll month. Never hard-deleted."""

    __tablename__ = "payroll_periods"

    id = Column(Integer, primary_key=True, index=True)
    label = Column(String(100), nullable=False)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    status = Column(
        Enum(PayrollPeriodStatus, name="payroll_period_status", values_callable=_enum_values),
        default=PayrollPeriodStatus.DRAFT,
        nullable=False,
        index=True,
    )
    source_type = Column(
        Enum(PayrollSourceType, name="payroll_source_type", values_callable=_enum_values),
        default=PayrollSourceType.MANUAL,
        nullable=False,
    )
    created_by_id = Column(Integer, nullable=True)
    approved_by_id = Column(Integer, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    locked_at = Column(DateTime, nullable=True)
    summary_json = Column(JSON, nullable=True)

    input_values = relationship(
        "PayrollInputValue", back_populates="period", cascade="all, delete-orphan"
    )
    expense_entries = relationship(
        "PayrollExpenseEntry", back_populates="period", cascade="all, delete-orphan"
    )
    computed_values = relationship(
        "PayrollComputedValue", back_populates="period", cascade="all, delete-orphan"
    )
    receipts = relationship(
        "PayrollReceipt", back_populates="period", cascade="all, delete-orphan"
    )
    approval_events = relationship(
        "PayrollApprovalEvent",
        back_populates="period",
        order_by="PayrollApprovalEvent.id",
    )

    __table_args__ = (
        UniqueConstraint("period_start", name="uq_payroll_period_start"),
    )

    def __repr__(self):
        return f"<PayrollPeriod(id={self.id}, label='{self.label}', status='{self.status}')>"


class PayrollInputValue(Base, TimestampMixin):
    """A single (payroll name, component) amount within a period."""

    __tablename__ = "payroll_input_values"

    id = Column(Integer, primary_key=True, index=True)
    period_id = Column(Integer, ForeignKey("payroll_periods.id"), nullable=False, index=True)
    payroll_name = Column(String(200), nullable=False)
    user_id = Column(Integer, ForeignKey("staff_members.id"), nullable=True, index=True)
    component_key = Column(
        Enum(PayrollComponentKey, name="payroll_component_key", values_callable=_enum_values),
        nullable=False,
    )
    amount = Column(Numeric(14, 2), nullable=False)
    source_sheet = Column(String(100), nullable=True)
    source_cell = Column(String(50), nullable=True)
    source_method = Column(
        Enum(PayrollInputSourceMethod, name="payroll_input_source_method", values_callable=_enum_values),
        default=PayrollInputSourceMethod.MANUAL,
        nullable=False,
    )
    is_override = Column(Boolean, default=False, nullable=False)
    note = Column(Text, nullable=True)
    provenance_json = Column(JSON, nullable=True)

    period = relationship("PayrollPeriod", back_populates="input_values")

    __table_args__ = (
        UniqueConstraint(
            "period_id", "payroll_name", "component_key",
            name="uq_payroll_input_period_name_component",
        ),
    )


class PayrollExpenseEntry(Base, TimestampMixin):
    __tablename__ = "payroll_expense_entries"

    id = Column(Integer, primary_key=True, index=True)
    period_id = Column(Integer, ForeignKey("payroll_periods.id"), nullable=False, index=True)
    payroll_name = Column(String(200), nullable=True)
    user_id = Column(Integer, ForeignKey("staff_members.id"), nullable=True)
    category_key = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    amount = Column(Numeric(14, 2), nullable=False)
    sheet_name = Column(String(100), nullable=True)
    row_ref = Column(String(50), nullable=True)
    entered_by_id = Column(Integer, nullable=True)

    period = relationship("PayrollPeriod", back_populates="expense_entries")


class PayrollComputedValue(Base, TimestampMixin):
    """Derived metric. Replaced wholesale on every recalculation."""

    __tablename__ = "payroll_computed_values"

    id = Column(Integer, primary_key=True, index=True)
    period_id = Column(Integer, ForeignKey("payroll_periods.id"), nullable=False, index=True)
    payroll_name = Column(String(200), nullable=False)
    user_id = Column(Integer, ForeignKey("staff_members.id"), nullable=True)
    metric_key = Column(
        Enum(PayrollMetricKey, name="payroll_metric_key", values_callable=_enum_values),
        nullable=False,
    )
    amount = Column(Numeric(14, 2), nullable=False)
    formula_key = Column(String(100), nullable=False)
    formula_version = Column(String(50), nullable=False)
    lineage_json = Column(JSON, nullable=True)

    period = relationship("PayrollPeriod", back_populates="computed_values")

    __table_args__ = (
        UniqueConstraint(
            "period_id", "payroll_name", "metric_key",
            name="uq_payroll_computed_period_name_metric",
        ),
        Index("idx_payroll_computed_name_metric", "payroll_name", "metric_key"),
    )


class PayrollReceipt(Base, TimestampMixin):
    __tablename__ = "payroll_receipts"

    id = Column(Integer, primary_key=True, index=True)
    period_id = Column(Integer, ForeignKey("payroll_periods.id"), nullable=False, index=True)
    payroll_name = Column(String(200), nullable=False)
    user_id = Column(Integer, ForeignKey("staff_members.id"), nullable=True)
    receipt_json = Column(JSON, nullable=False)
    status = Column(
        Enum(PayrollReceiptStatus, name="payroll_receipt_status", values_callable=_enum_values),
        default=PayrollReceiptStatus.READY,
        nullable=False,
    )
    version = Column(Integer, default=1, nullable=False)

    period = relationship("PayrollPeriod", back_populates="receipts")

    __table_args__ = (
        UniqueConstraint("period_id", "payroll_name", name="uq_payroll_receipt_period_name"),
    )
