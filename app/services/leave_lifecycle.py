"""
Leave Application Lifecycle

    Pending --approve--> Approved
    Pending --reject---> Rejected
    Pending --cancel---> Cancelled

A pending application may also be edited; the edit is validated like a
new submission.

Approval is the only transition that touches a balance. The application
row and the balance row are both locked, the balance is re-validated
against the locked snapshot, and the status change plus the deduction are
committed together or not at all.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import (
    InsufficientBalanceError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from app.models.employee import Employee
from app.models.leave_application import ACTIVE_LEAVE_STATUSES, LeaveApplication, LeaveStatus
from app.models.leave_type import LeaveType
from app.services.audit import AuditService
from app.services.balance_store import BalanceStore
from app.services.base import BaseService
from app.services.eligibility import EligibilityValidator, ValidationResult

logger = logging.getLogger(__name__)

APPLICATION_NUMBER_PREFIX = "LA"
EDITABLE_FIELDS = {"leave_type_id", "start_date", "end_date", "days_requested", "reason"}


@dataclass
class LifecycleResult:
    application: LeaveApplication
    warnings: List[str] = field(default_factory=list)


def raise_for_result(result: ValidationResult):
    """Translate a failed ValidationResult into the matching exception."""
    if result.is_valid:
        return
    if result.only_shortfall:
        raise InsufficientBalanceError(
            available=result.shortfall.available,
            requested=result.shortfall.requested
        )
    raise ValidationError(result.errors, result.warnings)


class LeaveLifecycleService(BaseService):
    def __init__(self, db: Session, today: Optional[date] = None):
        super().__init__(db)
        self.today = today or date.today()
        self.balances = BalanceStore(db)
        self.validator = EligibilityValidator(db, today=self.today)
        self.audit = AuditService(db)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get(self, application_id: int) -> LeaveApplication:
        application = self.db.get(LeaveApplication, application_id)
        if application is None:
            raise NotFoundError("Leave application not found")
        return application

    def list(
        self,
        employee_id: Optional[int] = None,
        status: Optional[str] = None,
        leave_type_id: Optional[int] = None,
        year: Optional[int] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[LeaveApplication]:
        query = self.db.query(LeaveApplication)
        if employee_id:
            query = query.filter(LeaveApplication.employee_id == employee_id)
        if status:
            query = query.filter(LeaveApplication.status == status)
        if leave_type_id:
            query = query.filter(LeaveApplication.leave_type_id == leave_type_id)
        if year:
            query = query.filter(
                LeaveApplication.start_date >= date(year, 1, 1),
                LeaveApplication.start_date <= date(year, 12, 31)
            )
        query = query.order_by(LeaveApplication.applied_at.desc(), LeaveApplication.id.desc())
        if limit:
            query = query.offset(offset).limit(limit)
        return query.all()

    def pending(self) -> List[LeaveApplication]:
        return self.list(status=LeaveStatus.PENDING.value)

    def calendar(self, start_date: date, end_date: date, exclude_employee_id: Optional[int] = None) -> List[LeaveApplication]:
        """Pending and approved applications intersecting [start_date, end_date]."""
        query = self.db.query(LeaveApplication).filter(
            LeaveApplication.status.in_(ACTIVE_LEAVE_STATUSES),
            LeaveApplication.start_date <= end_date,
            LeaveApplication.end_date >= start_date
        )
        if exclude_employee_id:
            query = query.filter(LeaveApplication.employee_id != exclude_employee_id)
        return query.order_by(LeaveApplication.start_date).all()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    def check(self, application: LeaveApplication, for_approval: bool = False, lock: bool = False) -> ValidationResult:
        leave_type = self.db.get(LeaveType, application.leave_type_id) if application.leave_type_id else None
        balance = None
        if application.employee_id and application.leave_type_id and application.start_date:
            lookup = self.balances.get_for_update if lock else self.balances.get
            balance = lookup(application.employee_id, application.leave_type_id, application.start_date.year)
        return self.validator.validate(application, balance, leave_type, for_approval=for_approval)

    def dry_run(self, **fields) -> ValidationResult:
        """Validate a prospective application without persisting anything."""
        return self.check(self._draft(**fields))

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def create(
        self,
        employee_id: int,
        leave_type_id: int,
        start_date: date,
        end_date: date,
        days_requested: float,
        reason: Optional[str] = None
    ) -> LifecycleResult:
        self._require_employee(employee_id)
        application = self._draft(
            employee_id=employee_id,
            leave_type_id=leave_type_id,
            start_date=start_date,
            end_date=end_date,
            days_requested=days_requested,
            reason=reason
        )
        result = self.check(application)
        raise_for_result(result)

        application.application_number = self.generate_application_number()
        self.db.add(application)
        self.db.flush()
        self.audit.log_action(
            action="leave_application_created",
            entity_type="leave_application",
            entity_id=application.id,
            user_id=None,
            details={
                "employee_id": employee_id,
                "leave_type_id": leave_type_id,
                "days_requested": days_requested,
                "warnings": result.warnings,
            }
        )
        self.commit()
        self.db.refresh(application)
        logger.info(f"Leave application {application.application_number} submitted by employee {employee_id}")
        return LifecycleResult(application=application, warnings=result.warnings)

    def create_on_behalf(self, reviewer_id: int, auto_approve: bool = False, **fields) -> LifecycleResult:
        """Admin-filed leave; optionally approved in the same request."""
        created = self.create(**fields)
        if not auto_approve:
            return created
        approved = self.approve(created.application.id, reviewer_id, "Filed and approved by administrator")
        approved.warnings = created.warnings + approved.warnings
        return approved

    def update(self, application_id: int, user_id: Optional[int] = None, **fields) -> LifecycleResult:
        """
        Edit a pending application and re-run every rule against the edited
        values. The overlap check skips the application's own row.
        """
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError([f"Field {name} cannot be changed" for name in sorted(unknown)])
        try:
            application = self._lock_application(application_id)
            if application.status != LeaveStatus.PENDING.value:
                raise StateConflictError("Cannot update leave application that has been reviewed")

            before = {name: getattr(application, name) for name in EDITABLE_FIELDS}
            for name, value in fields.items():
                setattr(application, name, value)
            result = self.check(application)
            raise_for_result(result)

            self.audit.log_action(
                action="leave_application_updated",
                entity_type="leave_application",
                entity_id=application.id,
                user_id=user_id,
                details={"warnings": result.warnings},
                before_state=before,
                after_state={name: getattr(application, name) for name in EDITABLE_FIELDS}
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(application)
        logger.info(f"Leave application {application.application_number} updated")
        return LifecycleResult(application=application, warnings=result.warnings)

    def approve(self, application_id: int, reviewer_id: int, notes: Optional[str] = None) -> LifecycleResult:
        try:
            application = self._lock_application(application_id)
            if application.status != LeaveStatus.PENDING.value:
                raise StateConflictError("Only pending leave applications can be approved")

            year = application.start_date.year
            balance = self.balances.require_for_update(
                application.employee_id, application.leave_type_id, year
            )
            leave_type = self.db.get(LeaveType, application.leave_type_id)

            # Balances may have moved since submission; validate against the locked row
            result = self.validator.validate(application, balance, leave_type, for_approval=True)
            raise_for_result(result)

            before = {"status": application.status, "balance": self.balances.snapshot(balance)}
            application.status = LeaveStatus.APPROVED.value
            application.reviewed_by = reviewer_id
            application.reviewed_at = datetime.now(timezone.utc)
            application.review_notes = notes
            self.balances.apply_usage(balance, application.days_requested)

            self.audit.log_action(
                action="leave_application_approved",
                entity_type="leave_application",
                entity_id=application.id,
                user_id=reviewer_id,
                details={"notes": notes, "days_requested": application.days_requested},
                before_state=before,
                after_state={"status": application.status, "balance": self.balances.snapshot(balance)}
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(application)
        logger.info(f"Leave application {application.application_number} approved by {reviewer_id}")
        return LifecycleResult(application=application, warnings=result.warnings)

    def reject(self, application_id: int, reviewer_id: int, notes: Optional[str] = None) -> LifecycleResult:
        try:
            application = self._lock_application(application_id)
            if application.status != LeaveStatus.PENDING.value:
                raise StateConflictError("Only pending leave applications can be rejected")
            application.status = LeaveStatus.REJECTED.value
            application.reviewed_by = reviewer_id
            application.reviewed_at = datetime.now(timezone.utc)
            application.review_notes = notes
            self.audit.log_action(
                action="leave_application_rejected",
                entity_type="leave_application",
                entity_id=application.id,
                user_id=reviewer_id,
                details={"notes": notes}
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(application)
        return LifecycleResult(application=application)

    def cancel(self, application_id: int, user_id: Optional[int] = None) -> LifecycleResult:
        try:
            application = self._lock_application(application_id)
            if application.status != LeaveStatus.PENDING.value:
                raise StateConflictError("Only pending leave applications can be cancelled")
            application.status = LeaveStatus.CANCELLED.value
            self.audit.log_action(
                action="leave_application_cancelled",
                entity_type="leave_application",
                entity_id=application.id,
                user_id=user_id,
                details={}
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(application)
        return LifecycleResult(application=application)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def generate_application_number(self) -> str:
        """LA-<year>-<6 digits>, probing forward on collision."""
        year = self.today.year
        suffix = int(time.time() * 1000) % 1_000_000
        for _ in range(1_000_000):
            candidate = f"{APPLICATION_NUMBER_PREFIX}-{year}-{suffix:06d}"
            exists = self.db.query(LeaveApplication.id).filter(
                LeaveApplication.application_number == candidate
            ).first()
            if exists is None:
                return candidate
            suffix = (suffix + 1) % 1_000_000
        raise StateConflictError(f"Application numbers exhausted for {year}")

    def _lock_application(self, application_id: int) -> LeaveApplication:
        application = self.db.query(LeaveApplication).filter(
            LeaveApplication.id == application_id
        ).with_for_update().populate_existing().first()
        if application is None:
            raise NotFoundError("Leave application not found")
        return application

    def _require_employee(self, employee_id: int) -> Employee:
        employee = self.db.get(Employee, employee_id)
        if employee is None:
            raise NotFoundError("Employee not found")
        return employee

    @staticmethod
    def _draft(**fields) -> LeaveApplication:
        fields.setdefault("status", LeaveStatus.PENDING.value)
        return LeaveApplication(**fields)
