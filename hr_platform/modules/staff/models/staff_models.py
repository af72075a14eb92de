from sqlalchemy import Boolean, Column, Enum, Integer, String

from hr_platform.core.database import Base
from hr_platform.core.mixins import TimestampMixin
from ..enums.staff_enums import StaffRole, StaffStatus


class StaffMember(Base, TimestampMixin):
    __tablename__ = "staff_members"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False, index=True)
    email = Column(String(255), unique=True)
    role = Column(
        Enum(StaffRole, name="staff_role", values_callable=lambda obj: [e.value for e in obj]),
        default=StaffRole.EMPLOYEE,
        nullable=False,
    )
    status = Column(
        Enum(StaffStatus, name="staff_status", values_callable=lambda obj: [e.value for e in obj]),
        default=StaffStatus.ACTIVE,
        nullable=False,
    )
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<StaffMember(id={self.id}, name='{self.name}', role='{self.role}')>"
