"""
Progressive income tax tables.

Each financial year owns an ordered list of brackets; the engine picks the
year covering a period and applies the bracket containing the income.
"""

from sqlalchemy import (
    Column, Integer, String, Numeric, Boolean, Date,
    ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship

from hr_platform.core.database import Base
from hr_platform.core.mixins import TimestampMixin


class PayrollFinancialYear(Base, TimestampMixin):
    __tablename__ = "payroll_financial_years"

    id = Column(Integer, primary_key=True, index=True)
    label = Column(String(50), nullable=False, unique=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_active = Column(Boolean, default=False, nullable=False)

    brackets = relationship(
        "PayrollTaxBracket",
        back_populates="financial_year",
        cascade="all, delete-orphan",
        order_by="PayrollTaxBracket.order_index",
    )

    __table_args__ = (
        Index("idx_financial_year_dates", "start_date", "end_date"),
    )


class PayrollTaxBracket(Base, TimestampMixin):
    """Annual bracket: tax = fixed_tax + (income - income_from) * tax_rate."""
    __tablename__ = "payroll_tax_brackets"

    id = Column(Integer, primary_key=True, index=True)
    financial_year_id = Column(
        Integer, ForeignKey("payroll_financial_years.id"), nullable=False, index=True
    )
    order_index = Column(Integer, nullable=False)
    income_from = Column(Numeric(16, 2), nullable=False)
    income_to = Column(Numeric(16, 2), nullable=True)
    fixed_tax = Column(Numeric(16, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(6, 4), nullable=False)

    financial_year = relationship("PayrollFinancialYear", back_populates="brackets")

    __table_args__ = (
        UniqueConstraint("financial_year_id", "order_index", name="uq_tax_bracket_year_order"),
    )
