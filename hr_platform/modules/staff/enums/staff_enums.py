from enum import Enum


class StaffStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ON_LEAVE = "on_leave"
    TERMINATED = "terminated"


class StaffRole(str, Enum):
    EMPLOYEE = "EMPLOYEE"
    HR = "HR"
    PAYROLL_MANAGER = "PAYROLL_MANAGER"
    ADMIN = "ADMIN"
