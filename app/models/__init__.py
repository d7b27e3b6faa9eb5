# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import (
    employee, leave_type, leave_balance, leave_application,
    monetization, system_setting, audit_log, terminal_leave_benefit,
    accrual_posting
)

# Explicit class exports for cleaner imports
from .employee import Employee, ServiceRecord, EmploymentStatus
from .leave_type import LeaveType
from .leave_balance import LeaveBalance
from .accrual_posting import AccrualPosting
from .leave_application import LeaveApplication, LeaveStatus
from .monetization import MonetizationTransaction
from .system_setting import SystemSetting
from .audit_log import AuditLog
from .terminal_leave_benefit import TerminalLeaveBenefit, TLBStatus

__all__ = [
    "Employee",
    "ServiceRecord",
    "EmploymentStatus",
    "LeaveType",
    "LeaveBalance",
    "AccrualPosting",
    "LeaveApplication",
    "LeaveStatus",
    "MonetizationTransaction",
    "SystemSetting",
    "AuditLog",
    "TerminalLeaveBenefit",
    "TLBStatus",
]
