"""
Eligibility Validator

Pure business-rule checks for a leave application. Nothing here writes to
the database; the validator reads overlapping applications and approved
SPL usage, and is handed the balance row and leave type by the caller so
approval can validate against the row it has already locked.
"""
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.leave_application import ACTIVE_LEAVE_STATUSES, LeaveApplication, LeaveStatus
from app.models.leave_balance import LeaveBalance
from app.models.leave_type import (
    FORCED_LEAVE,
    LeaveType,
    MATERNITY_LEAVE,
    PATERNITY_LEAVE,
    SICK_LEAVE,
    SPECIAL_PRIVILEGE_LEAVE,
)

LONG_LEAVE_WARNING_DAYS = 30
LOW_BALANCE_REMAINDER = 2
LOW_BALANCE_MIN_CAP = 10
FORCED_LEAVE_TYPICAL_DAYS = 5
SICK_LEAVE_CERTIFICATE_DAYS = 3
MATERNITY_LEAVE_MAX_DAYS = 105
PATERNITY_LEAVE_MAX_DAYS = 7
SPL_ANNUAL_LIMIT = 3


@dataclass
class BalanceShortfall:
    available: float
    requested: float


@dataclass
class ValidationResult:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    shortfall: Optional[BalanceShortfall] = None

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def only_shortfall(self) -> bool:
        """True when the balance shortfall is the single blocking problem."""
        return self.shortfall is not None and len(self.errors) == 1


def calculate_calendar_days(start_date: date, end_date: date) -> int:
    return abs((end_date - start_date).days) + 1


def calculate_working_days(start_date: date, end_date: date) -> int:
    """Days in the range excluding Saturdays and Sundays."""
    if start_date > end_date:
        return 0
    working_days = 0
    current = start_date
    while current <= end_date:
        if current.weekday() < 5:
            working_days += 1
        current += timedelta(days=1)
    return working_days


def includes_weekend(start_date: date, end_date: date) -> bool:
    if start_date > end_date:
        return False
    # Any span of 7+ days necessarily contains a weekend
    if (end_date - start_date).days >= 6:
        return True
    current = start_date
    while current <= end_date:
        if current.weekday() >= 5:
            return True
        current += timedelta(days=1)
    return False


def _format_days(value: float) -> str:
    return f"{value:g}"


class EligibilityValidator:
    def __init__(self, db: Session, today: Optional[date] = None):
        self.db = db
        self.today = today or date.today()

    def validate(
        self,
        application: LeaveApplication,
        balance: Optional[LeaveBalance],
        leave_type: Optional[LeaveType],
        for_approval: bool = False
    ) -> ValidationResult:
        """
        Run every rule in order and collect errors and warnings.

        `for_approval` skips the advance-notice rule: an application that
        was filed in time may still be approved on or after its start date.
        """
        result = ValidationResult()
        self._check_required_fields(application, result)

        if not (application.employee_id and application.leave_type_id
                and application.start_date and application.end_date):
            return result
        if application.start_date > application.end_date:
            return result

        if not for_approval and application.status == LeaveStatus.PENDING.value:
            if application.start_date <= self.today:
                result.errors.append("Leave must be applied at least 1 day in advance")

        duration = calculate_calendar_days(application.start_date, application.end_date)
        if duration > LONG_LEAVE_WARNING_DAYS:
            result.warnings.append(
                f"Leave duration exceeds {LONG_LEAVE_WARNING_DAYS} days - may require special approval"
            )

        if self.has_overlap(application):
            result.errors.append("Leave dates overlap with an existing pending or approved application")

        self._check_balance(application, balance, leave_type, result)
        self._check_leave_type_rules(application, leave_type, result)
        return result

    @staticmethod
    def _check_required_fields(application: LeaveApplication, result: ValidationResult):
        if not application.employee_id:
            result.errors.append("Employee ID is required")
        if not application.leave_type_id:
            result.errors.append("Leave type is required")
        if not application.start_date:
            result.errors.append("Start date is required")
        if not application.end_date:
            result.errors.append("End date is required")
        if not application.days_requested or application.days_requested <= 0:
            result.errors.append("Days requested must be greater than 0")
        if application.start_date and application.end_date and application.start_date > application.end_date:
            result.errors.append("Start date cannot be after end date")

    def has_overlap(self, application: LeaveApplication) -> bool:
        start, end = application.start_date, application.end_date
        query = self.db.query(LeaveApplication.id).filter(
            LeaveApplication.employee_id == application.employee_id,
            LeaveApplication.status.in_(ACTIVE_LEAVE_STATUSES),
            (
                ((LeaveApplication.start_date <= start) & (LeaveApplication.end_date >= start))
                | ((LeaveApplication.start_date <= end) & (LeaveApplication.end_date >= end))
                | ((LeaveApplication.start_date >= start) & (LeaveApplication.end_date <= end))
            )
        )
        if application.id is not None:
            query = query.filter(LeaveApplication.id != application.id)
        return query.first() is not None

    @staticmethod
    def _check_balance(
        application: LeaveApplication,
        balance: Optional[LeaveBalance],
        leave_type: Optional[LeaveType],
        result: ValidationResult
    ):
        requested = float(application.days_requested or 0)
        if requested <= 0:
            return
        if balance is None:
            result.errors.append("Leave balance not found for this year")
            return

        available = float(balance.current_balance or 0)
        if available < requested:
            result.shortfall = BalanceShortfall(available=available, requested=requested)
            result.errors.append(
                f"Insufficient leave balance. Available: {available:.2f} days, "
                f"Requested: {requested:.2f} days"
            )
            return

        remaining = available - requested
        cap = leave_type.max_days_per_year if leave_type else None
        if remaining < LOW_BALANCE_REMAINDER and cap is not None and cap > LOW_BALANCE_MIN_CAP:
            result.warnings.append(
                f"Low leave balance warning: Only {remaining:.2f} days will remain after this leave"
            )

    def _check_leave_type_rules(
        self,
        application: LeaveApplication,
        leave_type: Optional[LeaveType],
        result: ValidationResult
    ):
        if leave_type is None:
            result.errors.append("Invalid leave type")
            return

        duration = float(application.days_requested or 0)
        code = leave_type.code

        if code == FORCED_LEAVE:
            if includes_weekend(application.start_date, application.end_date):
                result.errors.append("Forced leave cannot include weekends")
            if duration > FORCED_LEAVE_TYPICAL_DAYS:
                result.warnings.append("Forced leave duration exceeds typical 5-day period")

        elif code == SICK_LEAVE:
            if duration >= SICK_LEAVE_CERTIFICATE_DAYS and leave_type.requires_medical_certificate:
                result.warnings.append("Medical certificate required for sick leave of 3 or more days")

        elif code == MATERNITY_LEAVE:
            if duration > MATERNITY_LEAVE_MAX_DAYS:
                result.errors.append("Maternity leave cannot exceed 105 days")

        elif code == PATERNITY_LEAVE:
            if duration > PATERNITY_LEAVE_MAX_DAYS:
                result.errors.append("Paternity leave cannot exceed 7 days")

        elif code == SPECIAL_PRIVILEGE_LEAVE:
            used = self.approved_days_in_year(application, leave_type.id)
            if used + duration > SPL_ANNUAL_LIMIT:
                result.errors.append(
                    f"SPL limit exceeded. Used: {_format_days(used)} days, "
                    f"Annual limit: {SPL_ANNUAL_LIMIT} days"
                )

    def approved_days_in_year(self, application: LeaveApplication, leave_type_id: int) -> float:
        """Approved days of one leave type in the calendar year of the application's start."""
        year = application.start_date.year
        query = self.db.query(func.coalesce(func.sum(LeaveApplication.days_requested), 0.0)).filter(
            LeaveApplication.employee_id == application.employee_id,
            LeaveApplication.leave_type_id == leave_type_id,
            LeaveApplication.status == LeaveStatus.APPROVED.value,
            LeaveApplication.start_date >= date(year, 1, 1),
            LeaveApplication.start_date <= date(year, 12, 31)
        )
        if application.id is not None:
            query = query.filter(LeaveApplication.id != application.id)
        return float(query.scalar() or 0.0)
