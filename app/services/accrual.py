"""
Leave Accrual

Year initialization (prorated on hire) and monthly VL/SL accrual with a
yearly maximum credit. Monthly accrual is guarded twice so that a retried
or duplicated job run never double-credits:

1. the employee must already have balance rows for the year;
2. no accrual posting may exist for the same (employee, year, month),
   and no MONTHLY_ACCRUAL_SUCCESS audit entry for it inside the dedupe
   window. The posting table is unique on that key, so two overlapping
   runs cannot both credit the month.

A guard that trips is reported as a no-op result, not raised.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.core.config import settings as app_settings
from app.core.exceptions import NotFoundError, ValidationError
from app.models.accrual_posting import AccrualPosting
from app.models.employee import Employee, EmploymentStatus
from app.models.leave_balance import LeaveBalance
from app.models.leave_type import ACCRUING_LEAVE_CODES, LeaveType, SPECIAL_PRIVILEGE_LEAVE
from app.services.audit import AuditService
from app.services.balance_store import BalanceStore, round_days
from app.services.base import BaseService
from app.services.settings_service import LedgerSettings

logger = logging.getLogger(__name__)

ACCRUAL_ENTITY = "leave_balance"
ACCRUAL_SUCCESS = "MONTHLY_ACCRUAL_SUCCESS"
ACCRUAL_SKIPPED = "MONTHLY_ACCRUAL_SKIPPED"
ACCRUAL_FAILED = "MONTHLY_ACCRUAL_FAILED"


@dataclass
class YearInitResult:
    employee_id: int
    year: int
    prorated_months: int
    created: Dict[str, float] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)


@dataclass
class TypeAccrual:
    leave_type: str
    previous_earned: float
    accrual_amount: float
    new_earned: float
    max_allowed: float
    at_maximum: bool


@dataclass
class AccrualResult:
    employee_id: int
    year: int
    month: int
    processed: bool
    message: str
    results: List[TypeAccrual] = field(default_factory=list)

    def credited(self, code: str) -> float:
        return sum(r.accrual_amount for r in self.results if r.leave_type == code)


def prorated_months(appointment_date: date, year: int) -> int:
    """Months of entitlement in `year`, counting the appointment month itself."""
    if appointment_date.year == year:
        return 13 - appointment_date.month
    return 12


class AccrualProcessor(BaseService):
    def __init__(self, db: Session, ledger_settings: LedgerSettings):
        super().__init__(db)
        self.settings = ledger_settings
        self.balances = BalanceStore(db)
        self.audit = AuditService(db)

    def initialize_year(self, employee_id: int, year: int, appointment_date: Optional[date] = None) -> YearInitResult:
        """
        Create one balance row per leave type for the year. Existing rows are
        left untouched, so the call is safe to repeat.
        """
        employee = self.db.get(Employee, employee_id)
        if employee is None:
            raise NotFoundError("Employee not found")
        appointment = appointment_date or employee.appointment_date
        if appointment is None:
            raise ValidationError([f"Employee {employee_id} has no appointment date"])
        if appointment.year > year:
            # No entitlement exists before the appointment year, so the
            # twelve-month default is not applied here
            raise ValidationError([
                f"Employee {employee_id} was appointed on {appointment.isoformat()}, after {year}; "
                f"leave balances start with the appointment year"
            ])

        months = prorated_months(appointment, year)
        result = YearInitResult(employee_id=employee_id, year=year, prorated_months=months)
        try:
            for leave_type in self.db.query(LeaveType).order_by(LeaveType.id).all():
                if self.balances.get_for_update(employee_id, leave_type.id, year) is not None:
                    result.skipped.append(leave_type.code)
                    continue
                earned = self.initial_entitlement(leave_type, months)
                self.balances.create(employee_id, leave_type.id, year, earned_days=earned)
                result.created[leave_type.code] = earned
            self.audit.log_action(
                action="LEAVE_YEAR_INITIALIZED",
                entity_type=ACCRUAL_ENTITY,
                entity_id=employee_id,
                details={"year": year, "prorated_months": months, "created": result.created}
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Initialized {len(result.created)} leave balances for employee {employee_id} "
            f"in {year} ({months} months)"
        )
        return result

    def initial_entitlement(self, leave_type: LeaveType, months: int) -> float:
        rate = self.settings.monthly_rate_for(leave_type.code)
        if rate is not None:
            return round_days(rate * months)
        if leave_type.code == SPECIAL_PRIVILEGE_LEAVE and leave_type.max_days_per_year:
            return round_days(leave_type.max_days_per_year / 12 * months)
        return round_days(leave_type.max_days_per_year or 0)

    def process_monthly_accrual(self, employee_id: int, year: int, month: int) -> AccrualResult:
        """
        Credit one month of VL/SL. The VL/SL rows are locked before either
        guard is evaluated, so a concurrent run for the same employee waits
        here and then sees the first run's posting.
        """
        if not 1 <= month <= 12:
            raise ValidationError(["Month must be between 1 and 12"])

        try:
            balances = self.balances.list_for_codes(employee_id, year, ACCRUING_LEAVE_CODES, lock=True)

            if not self.balances.has_balances(employee_id, year):
                return self._skip(employee_id, year, month, "Employee has no existing leave balances for this year")

            if self.already_accrued(employee_id, year, month):
                return self._skip(
                    employee_id, year, month, "Monthly accrual already processed for this employee and month"
                )

            posting = AccrualPosting(employee_id=employee_id, year=year, month=month)
            self.db.add(posting)
            try:
                self.db.flush()
            except IntegrityError:
                return self._skip(
                    employee_id, year, month, "Monthly accrual already processed for this employee and month"
                )

            result = AccrualResult(
                employee_id=employee_id, year=year, month=month, processed=True,
                message="Monthly accrual processed with maximum credit enforcement"
            )
            for balance in balances:
                result.results.append(self._accrue(balance))
            posting.vl_credited = result.credited("VL")
            posting.sl_credited = result.credited("SL")

            self.audit.log_action(
                action=ACCRUAL_SUCCESS,
                entity_type=ACCRUAL_ENTITY,
                entity_id=employee_id,
                details={
                    "employee_id": employee_id,
                    "year": year,
                    "month": month,
                    "results": [r.__dict__ for r in result.results],
                }
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return result

    def already_accrued(self, employee_id: int, year: int, month: int) -> bool:
        posted = self.db.query(AccrualPosting.id).filter(
            AccrualPosting.employee_id == employee_id,
            AccrualPosting.year == year,
            AccrualPosting.month == month
        ).first() is not None
        return posted or bool(self.audit.find_recent(
            ACCRUAL_SUCCESS,
            ACCRUAL_ENTITY,
            employee_id,
            within_days=self.settings.accrual_dedupe_window_days,
            year=year,
            month=month
        ))

    def _skip(self, employee_id: int, year: int, month: int, message: str) -> AccrualResult:
        # Releases the row locks taken for the guard checks
        self.db.rollback()
        return AccrualResult(employee_id=employee_id, year=year, month=month, processed=False, message=message)

    def _accrue(self, balance: LeaveBalance) -> TypeAccrual:
        code = balance.leave_type.code
        rate = self.settings.monthly_rate_for(code) or 0.0
        cap = balance.leave_type.max_days_per_year
        if cap is None:
            cap = self.settings.default_accrual_cap

        current = balance.earned_days or 0.0
        new_earned = min(current + rate, cap)
        credited = round_days(max(new_earned - current, 0.0))
        if credited > 0:
            self.balances.apply_accrual(balance, credited)

        return TypeAccrual(
            leave_type=code,
            previous_earned=current,
            accrual_amount=credited,
            new_earned=balance.earned_days,
            max_allowed=cap,
            at_maximum=balance.earned_days >= cap
        )


@dataclass
class AccrualRunSummary:
    year: int
    month: int
    total_employees: int = 0
    successful: int = 0
    skipped: int = 0
    failed: int = 0
    total_vl_credited: float = 0.0
    total_sl_credited: float = 0.0
    details: List[Dict[str, Any]] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


class MonthlyAccrualJob:
    """
    Runs monthly accrual across all active employees with balances for
    the year. Each employee is processed in its own transaction; a failure
    for one employee is recorded and the run moves on.
    """

    def __init__(self, db: Session, ledger_settings: LedgerSettings):
        self.db = db
        self.processor = AccrualProcessor(db, ledger_settings)
        self.audit = AuditService(db)

    def eligible_employees(self, year: int, employee_ids: Optional[List[int]] = None) -> List[Employee]:
        query = self.db.query(Employee).join(LeaveBalance, LeaveBalance.employee_id == Employee.id).filter(
            Employee.employment_status == EmploymentStatus.ACTIVE.value,
            LeaveBalance.year == year
        ).distinct()
        if employee_ids:
            query = query.filter(Employee.id.in_(employee_ids))
        return query.order_by(Employee.id).all()

    def dry_run(self, year: int, month: int, employee_ids: Optional[List[int]] = None) -> Dict[str, Any]:
        employees = self.eligible_employees(year, employee_ids)
        settings = self.processor.settings
        return {
            "year": year,
            "month": month,
            "total_eligible": len(employees),
            "eligible_employees": [
                {"employee_id": e.id, "employee_number": e.employee_number, "employee_name": e.full_name}
                for e in employees
            ],
            "total_projected_vl": round_days(len(employees) * settings.monthly_vl_accrual),
            "total_projected_sl": round_days(len(employees) * settings.monthly_sl_accrual),
        }

    def run(self, year: int, month: int, employee_ids: Optional[List[int]] = None) -> AccrualRunSummary:
        summary = AccrualRunSummary(year=year, month=month, started_at=datetime.now(timezone.utc))
        employees = self.eligible_employees(year, employee_ids)
        summary.total_employees = len(employees)
        logger.info(f"Monthly accrual run for {year}-{month:02d}: {len(employees)} eligible employees")

        for employee in employees:
            employee_id, employee_number = employee.id, employee.employee_number
            try:
                result = self._process_with_retry(employee_id, year, month)
            except Exception as exc:
                logger.error(f"Monthly accrual failed for employee {employee_id}: {exc}", exc_info=True)
                summary.failed += 1
                summary.details.append({"employee_id": employee_id, "success": False, "error": str(exc)})
                self._record(ACCRUAL_FAILED, employee_id, year, month, {"error": str(exc)})
                continue

            if result.processed:
                summary.successful += 1
                summary.total_vl_credited += result.credited("VL")
                summary.total_sl_credited += result.credited("SL")
            else:
                summary.skipped += 1
                self._record(ACCRUAL_SKIPPED, employee_id, year, month, {"message": result.message})
            summary.details.append({
                "employee_id": employee_id,
                "employee_number": employee_number,
                "success": result.processed,
                "message": result.message,
            })

        summary.total_vl_credited = round_days(summary.total_vl_credited)
        summary.total_sl_credited = round_days(summary.total_sl_credited)
        summary.finished_at = datetime.now(timezone.utc)
        logger.info(
            f"Monthly accrual {year}-{month:02d} finished: {summary.successful} successful, "
            f"{summary.skipped} skipped, {summary.failed} failed"
        )
        return summary

    @retry(
        retry=retry_if_exception_type(OperationalError),
        stop=stop_after_attempt(app_settings.batch_retry_attempts),
        wait=wait_exponential(multiplier=0.2, max=2),
        reraise=True,
    )
    def _process_with_retry(self, employee_id: int, year: int, month: int) -> AccrualResult:
        return self.processor.process_monthly_accrual(employee_id, year, month)

    def _record(self, action: str, employee_id: int, year: int, month: int, details: Dict[str, Any]):
        try:
            self.audit.log_action(
                action=action,
                entity_type=ACCRUAL_ENTITY,
                entity_id=employee_id,
                details={"employee_id": employee_id, "year": year, "month": month, **details}
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.warning(f"Could not record {action} for employee {employee_id}", exc_info=True)
