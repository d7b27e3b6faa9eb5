"""
Terminal Leave Benefits

    amount = total_leave_credits x highest_monthly_salary x constant_factor

Credits are summed over every balance row the employee has ever held;
the salary is the highest of the service-record history and the current
salary. A computed TLB is persisted once per employee and then moves
through its statuses only via `apply_transition`:

    Computed --Approve--> Approved --Pay--> Paid
    Computed/Approved --SetStatus(Cancelled)--> Cancelled
    Approved/Cancelled --SetStatus(Computed)--> Computed
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import extract, func
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, StateConflictError, ValidationError
from app.models.employee import Employee, ServiceRecord
from app.models.leave_balance import LeaveBalance
from app.models.terminal_leave_benefit import TerminalLeaveBenefit, TLBStatus
from app.services.audit import AuditService
from app.services.base import BaseService
from app.services.settings_service import LedgerSettings, TLB_FACTOR_MAX, TLB_FACTOR_MIN

logger = logging.getLogger(__name__)

LARGE_AMOUNT_WARNING = 1_000_000


def years_of_service(appointment_date: Optional[date], until: Optional[date] = None) -> float:
    if appointment_date is None:
        return 0.0
    end = until or date.today()
    return round((end - appointment_date).days / 365.25, 2)


def one_year_after(day: date) -> date:
    try:
        return day.replace(year=day.year + 1)
    except ValueError:
        # Feb 29 has no counterpart next year
        return date(day.year + 1, 3, 1)


def compute_amount(credits: float, salary: float, factor: float) -> float:
    return round(credits * salary * factor, 2)


@dataclass
class TLBCalculation:
    employee_id: int
    employee_name: str
    employee_number: str
    appointment_date: Optional[date]
    years_of_service: float
    total_leave_credits: float
    highest_monthly_salary: float
    constant_factor: float
    computed_amount: float
    claim_date: date
    separation_date: date
    warnings: List[str] = field(default_factory=list)


class TerminalBenefitCalculator:
    def __init__(self, db: Session, ledger_settings: LedgerSettings, today: Optional[date] = None):
        self.db = db
        self.settings = ledger_settings
        self.today = today or date.today()

    def total_leave_credits(self, employee_id: int) -> float:
        total = self.db.query(
            func.coalesce(
                func.sum(LeaveBalance.earned_days - LeaveBalance.used_days - LeaveBalance.monetized_days),
                0.0
            )
        ).filter(LeaveBalance.employee_id == employee_id).scalar()
        return round(float(total or 0.0), 2)

    def highest_monthly_salary(self, employee: Employee) -> float:
        recorded = self.db.query(func.max(ServiceRecord.salary)).filter(
            ServiceRecord.employee_id == employee.id,
            ServiceRecord.salary.isnot(None)
        ).scalar()
        return float(max(recorded or 0.0, employee.current_monthly_salary or 0.0))

    def validate(
        self,
        total_leave_credits: float,
        highest_monthly_salary: float,
        constant_factor: float,
        claim_date: date,
        separation_date: date
    ) -> List[str]:
        """Raise ValidationError on blocking problems; return warnings otherwise."""
        errors = []
        warnings = []
        if total_leave_credits is None or total_leave_credits <= 0:
            errors.append("Total leave credits must be greater than 0")
        if highest_monthly_salary is None or highest_monthly_salary <= 0:
            errors.append("Highest monthly salary must be greater than 0")
        if constant_factor is None or not TLB_FACTOR_MIN <= constant_factor <= TLB_FACTOR_MAX:
            errors.append(f"Constant factor must be between {TLB_FACTOR_MIN} and {TLB_FACTOR_MAX}")
        if claim_date and separation_date and claim_date > separation_date:
            errors.append("Claim date cannot be after separation date")
        if errors:
            raise ValidationError(errors)

        if separation_date > one_year_after(self.today):
            warnings.append("Separation date is more than a year in the future")
        amount = compute_amount(total_leave_credits, highest_monthly_salary, constant_factor)
        if amount > LARGE_AMOUNT_WARNING:
            warnings.append("Computed amount is unusually high - please verify calculation")
        return warnings

    def calculate(
        self,
        employee_id: int,
        separation_date: date,
        claim_date: date,
        total_leave_credits: Optional[float] = None,
        highest_monthly_salary: Optional[float] = None,
        constant_factor: Optional[float] = None
    ) -> TLBCalculation:
        """
        Compute the benefit from the ledger. Any of the three inputs may be
        given explicitly to override the ledger-derived value.
        """
        employee = self.db.get(Employee, employee_id)
        if employee is None:
            raise NotFoundError("Employee not found")

        credits = total_leave_credits if total_leave_credits is not None else self.total_leave_credits(employee_id)
        salary = highest_monthly_salary if highest_monthly_salary is not None else self.highest_monthly_salary(employee)
        factor = constant_factor if constant_factor is not None else self.settings.tlb_constant_factor
        warnings = self.validate(credits, salary, factor, claim_date, separation_date)

        return TLBCalculation(
            employee_id=employee.id,
            employee_name=employee.full_name,
            employee_number=employee.employee_number,
            appointment_date=employee.appointment_date,
            years_of_service=years_of_service(employee.appointment_date, separation_date),
            total_leave_credits=credits,
            highest_monthly_salary=salary,
            constant_factor=factor,
            computed_amount=compute_amount(credits, salary, factor),
            claim_date=claim_date,
            separation_date=separation_date,
            warnings=warnings
        )


# ----------------------------------------------------------------------
# Status transitions
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class Approve:
    reviewer: int
    at: Optional[datetime] = None


@dataclass(frozen=True)
class Pay:
    payer: int
    at: Optional[datetime] = None
    reference: Optional[str] = None


@dataclass(frozen=True)
class SetStatus:
    status: TLBStatus


Transition = Union[Approve, Pay, SetStatus]

# Targets reachable through SetStatus; Approved and Paid need their own
# transition so the reviewer or payer is always recorded
SET_STATUS_ALLOWED = {
    TLBStatus.COMPUTED.value: {TLBStatus.CANCELLED.value},
    TLBStatus.APPROVED.value: {TLBStatus.CANCELLED.value, TLBStatus.COMPUTED.value},
    TLBStatus.CANCELLED.value: {TLBStatus.COMPUTED.value},
    TLBStatus.PAID.value: set(),
}


def apply_transition(record: TerminalLeaveBenefit, transition: Transition) -> TerminalLeaveBenefit:
    current = record.status
    now = datetime.now(timezone.utc)

    if isinstance(transition, Approve):
        if current != TLBStatus.COMPUTED.value:
            raise StateConflictError(f"Cannot approve a TLB record in status {current}")
        record.status = TLBStatus.APPROVED.value
        record.approved_by = transition.reviewer
        record.approved_at = transition.at or now

    elif isinstance(transition, Pay):
        if current != TLBStatus.APPROVED.value:
            raise StateConflictError(f"Only approved TLB records can be paid (current status: {current})")
        record.status = TLBStatus.PAID.value
        record.paid_by = transition.payer
        record.payment_date = transition.at or now
        if transition.reference:
            record.check_number = transition.reference

    elif isinstance(transition, SetStatus):
        target = TLBStatus(transition.status).value
        if target not in SET_STATUS_ALLOWED.get(current, set()):
            raise StateConflictError(f"Cannot change TLB status from {current} to {target}")
        record.status = target
        if target == TLBStatus.COMPUTED.value:
            record.approved_by = None
            record.approved_at = None

    else:
        raise TypeError(f"Unknown TLB transition: {transition!r}")

    return record


class TerminalBenefitService(BaseService):
    """Persistence and lifecycle of TLB records."""

    def __init__(self, db: Session, ledger_settings: LedgerSettings, today: Optional[date] = None):
        super().__init__(db)
        self.calculator = TerminalBenefitCalculator(db, ledger_settings, today=today)
        self.audit = AuditService(db)

    def get(self, record_id: int) -> TerminalLeaveBenefit:
        record = self.db.get(TerminalLeaveBenefit, record_id)
        if record is None:
            raise NotFoundError("TLB record not found")
        return record

    def list(
        self,
        status: Optional[str] = None,
        employee_id: Optional[int] = None,
        year: Optional[int] = None,
        search: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[TerminalLeaveBenefit]:
        query = self.db.query(TerminalLeaveBenefit).join(Employee)
        if status:
            query = query.filter(TerminalLeaveBenefit.status == status)
        if employee_id:
            query = query.filter(TerminalLeaveBenefit.employee_id == employee_id)
        if year:
            query = query.filter(extract("year", TerminalLeaveBenefit.claim_date) == year)
        if search:
            term = f"%{search}%"
            query = query.filter(
                Employee.first_name.ilike(term)
                | Employee.last_name.ilike(term)
                | Employee.employee_number.ilike(term)
            )
        query = query.order_by(TerminalLeaveBenefit.claim_date.desc(), TerminalLeaveBenefit.id.desc())
        if limit:
            query = query.offset(offset).limit(limit)
        return query.all()

    def create(
        self,
        employee_id: int,
        claim_date: date,
        separation_date: date,
        processed_by: Optional[int] = None,
        notes: Optional[str] = None,
        total_leave_credits: Optional[float] = None,
        highest_monthly_salary: Optional[float] = None,
        constant_factor: Optional[float] = None
    ):
        existing = self.db.query(TerminalLeaveBenefit.id).filter(
            TerminalLeaveBenefit.employee_id == employee_id
        ).first()
        if existing is not None:
            raise StateConflictError("A TLB record already exists for this employee")

        calculation = self.calculator.calculate(
            employee_id,
            separation_date=separation_date,
            claim_date=claim_date,
            total_leave_credits=total_leave_credits,
            highest_monthly_salary=highest_monthly_salary,
            constant_factor=constant_factor
        )
        record = TerminalLeaveBenefit(
            employee_id=employee_id,
            total_leave_credits=calculation.total_leave_credits,
            highest_monthly_salary=calculation.highest_monthly_salary,
            constant_factor=calculation.constant_factor,
            computed_amount=calculation.computed_amount,
            claim_date=claim_date,
            separation_date=separation_date,
            status=TLBStatus.COMPUTED.value,
            processed_by=processed_by,
            notes=notes
        )
        try:
            self.db.add(record)
            self.db.flush()
            self.audit.log_action(
                action="tlb_computed",
                entity_type="terminal_leave_benefit",
                entity_id=record.id,
                user_id=processed_by,
                details={"employee_id": employee_id, "computed_amount": record.computed_amount}
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(record)
        logger.info(f"TLB record {record.id} computed for employee {employee_id}: {record.computed_amount:.2f}")
        return record, calculation.warnings

    def transition(
        self,
        record_id: int,
        transition: Transition,
        user_id: Optional[int] = None,
        notes: Optional[str] = None
    ) -> TerminalLeaveBenefit:
        try:
            record = self._lock(record_id)
            self._transition_locked(record, transition, user_id, notes)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(record)
        return record

    def bulk_transition(
        self,
        record_ids: List[int],
        transition: Transition,
        user_id: Optional[int] = None
    ) -> List[TerminalLeaveBenefit]:
        """Apply one transition to many records. All records change or none do."""
        if not record_ids:
            raise ValidationError(["At least one TLB record id is required"])
        try:
            records = [self._lock(record_id) for record_id in dict.fromkeys(record_ids)]
            for record in records:
                self._transition_locked(record, transition, user_id, None)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        for record in records:
            self.db.refresh(record)
        logger.info(f"Bulk TLB transition {type(transition).__name__} applied to {len(records)} records")
        return records

    def update(
        self,
        record_id: int,
        user_id: Optional[int] = None,
        notes: Optional[str] = None,
        check_number: Optional[str] = None,
        payment_date: Optional[datetime] = None
    ) -> TerminalLeaveBenefit:
        """
        Edit notes, or correct the payment details of a paid record. Status
        changes go through `transition`.
        """
        try:
            record = self._lock(record_id)
            if (check_number is not None or payment_date is not None) and record.status != TLBStatus.PAID.value:
                raise StateConflictError("Payment details can only be corrected on paid TLB records")
            before = {"notes": record.notes, "check_number": record.check_number, "payment_date": record.payment_date}
            if notes is not None:
                record.notes = notes
            if check_number is not None:
                record.check_number = check_number
            if payment_date is not None:
                record.payment_date = payment_date
            self.audit.log_action(
                action="tlb_updated",
                entity_type="terminal_leave_benefit",
                entity_id=record.id,
                user_id=user_id,
                before_state=before,
                after_state={
                    "notes": record.notes,
                    "check_number": record.check_number,
                    "payment_date": record.payment_date,
                }
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(record)
        return record

    def delete(self, record_id: int, user_id: Optional[int] = None):
        record = self.get(record_id)
        if record.status == TLBStatus.PAID.value:
            raise StateConflictError("Cannot delete a paid TLB record")
        try:
            self.audit.log_action(
                action="tlb_deleted",
                entity_type="terminal_leave_benefit",
                entity_id=record.id,
                user_id=user_id,
                before_state={"status": record.status, "computed_amount": record.computed_amount}
            )
            self.db.delete(record)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def statistics(self, year: Optional[int] = None) -> Dict[str, Any]:
        query = self.db.query(TerminalLeaveBenefit)
        if year:
            query = query.filter(extract("year", TerminalLeaveBenefit.claim_date) == year)
        records = query.all()
        amounts = [r.computed_amount for r in records]
        breakdown = {status.value.lower(): 0 for status in TLBStatus}
        for record in records:
            breakdown[record.status.lower()] = breakdown.get(record.status.lower(), 0) + 1
        return {
            "summary": {
                "total_records": len(records),
                "total_computed_amount": round(sum(amounts), 2),
                "total_paid_amount": round(
                    sum(r.computed_amount for r in records if r.status == TLBStatus.PAID.value), 2
                ),
                "average_amount": round(sum(amounts) / len(amounts), 2) if amounts else 0.0,
                "highest_amount": max(amounts) if amounts else 0.0,
                "lowest_amount": min(amounts) if amounts else 0.0,
            },
            "status_breakdown": breakdown,
        }

    def summary_report(self, year: Optional[int] = None, status: Optional[str] = None) -> Dict[str, Any]:
        """Amount aggregates per status plus the matching records with employee details."""
        query = self.db.query(TerminalLeaveBenefit).join(Employee)
        if year:
            query = query.filter(extract("year", TerminalLeaveBenefit.claim_date) == year)
        if status:
            query = query.filter(TerminalLeaveBenefit.status == status)
        records = query.order_by(TerminalLeaveBenefit.claim_date.desc(), TerminalLeaveBenefit.id.desc()).all()

        grouped: Dict[str, List[float]] = {}
        for record in records:
            grouped.setdefault(record.status, []).append(record.computed_amount)
        return {
            "by_status": [
                {
                    "status": name,
                    "record_count": len(amounts),
                    "total_amount": round(sum(amounts), 2),
                    "average_amount": round(sum(amounts) / len(amounts), 2),
                    "min_amount": min(amounts),
                    "max_amount": max(amounts),
                }
                for name, amounts in sorted(grouped.items())
            ],
            "records": [
                {
                    "id": record.id,
                    "employee_id": record.employee_id,
                    "employee_name": record.employee.full_name,
                    "employee_number": record.employee.employee_number,
                    "claim_date": record.claim_date,
                    "separation_date": record.separation_date,
                    "computed_amount": record.computed_amount,
                    "status": record.status,
                }
                for record in records
            ],
            "total_records": len(records),
            "total_amount": round(sum(r.computed_amount for r in records), 2),
        }

    def _transition_locked(
        self,
        record: TerminalLeaveBenefit,
        transition: Transition,
        user_id: Optional[int],
        notes: Optional[str]
    ):
        before = record.status
        apply_transition(record, transition)
        if notes is not None:
            record.notes = notes
        self.audit.log_action(
            action="tlb_status_changed",
            entity_type="terminal_leave_benefit",
            entity_id=record.id,
            user_id=user_id,
            details={"transition": type(transition).__name__},
            before_state={"status": before},
            after_state={"status": record.status}
        )

    def _lock(self, record_id: int) -> TerminalLeaveBenefit:
        record = self.db.query(TerminalLeaveBenefit).filter(
            TerminalLeaveBenefit.id == record_id
        ).with_for_update().populate_existing().first()
        if record is None:
            raise NotFoundError(f"TLB record {record_id} not found")
        return record
