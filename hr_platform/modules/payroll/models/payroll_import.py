# hr_platform/modules/payroll/models/payroll_import.py

"""
Workbook import bookkeeping and the payroll name alias table.
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, Text, JSON,
    ForeignKey, Enum
)
from sqlalchemy.orm import relationship

from hr_platform.core.database import Base
from hr_platform.core.mixins import TimestampMixin
from ..enums.payroll_enums import (
    PayrollIdentityStatus,
    PayrollImportBatchStatus,
    PayrollSourceType,
)


class PayrollImportBatch(Base, TimestampMixin):
    """
    Tracking row for one backfill run.

    Created as PROCESSING before any destructive write and finished as
    COMPLETED (with the run summary) or FAILED (with the error message).
    """
    __tablename__ = "payroll_import_batches"

    id = Column(Integer, primary_key=True, index=True)
    source_type = Column(
        Enum(PayrollSourceType, name="payroll_source_type", values_callable=lambda obj: [e.value for e in obj]),
        default=PayrollSourceType.WORKBOOK,
        nullable=False,
    )
    file_name = Column(String(255), nullable=False)
    imported_by_id = Column(Integer, nullable=True)
    status = Column(
        Enum(PayrollImportBatchStatus, name="payroll_import_batch_status", values_callable=lambda obj: [e.value for e in obj]),
        default=PayrollImportBatchStatus.PROCESSING,
        nullable=False,
        index=True,
    )
    summary_json = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    rows = relationship("PayrollImportRow", back_populates="batch", cascade="all, delete-orphan")

    @property
    def is_terminal(self) -> bool:
        return self.status in (
            PayrollImportBatchStatus.COMPLETED,
            PayrollImportBatchStatus.FAILED,
        )


class PayrollImportRow(Base):
    """Raw workbook row kept for audit when a backfill asks for it."""
    __tablename__ = "payroll_import_rows"

    id = Column(Integer, primary_key=True, index=True)
    batch_id = Column(Integer, ForeignKey("payroll_import_batches.id"), nullable=False, index=True)
    sheet_name = Column(String(100), nullable=False)
    row_number = Column(Integer, nullable=False)
    row_json = Column(JSON, nullable=False)
    period_key = Column(String(7), nullable=True)
    payroll_name = Column(String(200), nullable=True)
    normalized_name = Column(String(200), nullable=True)

    batch = relationship("PayrollImportBatch", back_populates="rows")


class PayrollIdentityMapping(Base, TimestampMixin):
    """Persisted alias from a normalized payroll name to a roster member."""
    __tablename__ = "payroll_identity_mappings"

    id = Column(Integer, primary_key=True, index=True)
    normalized_payroll_name = Column(String(200), unique=True, nullable=False, index=True)
    display_payroll_name = Column(String(200), nullable=False)
    user_id = Column(Integer, ForeignKey("staff_members.id"), nullable=True, index=True)
    status = Column(
        Enum(PayrollIdentityStatus, name="payroll_identity_status", values_callable=lambda obj: [e.value for e in obj]),
        default=PayrollIdentityStatus.UNRESOLVED,
        nullable=False,
    )
    last_matched_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)

    staff_member = relationship("StaffMember")
