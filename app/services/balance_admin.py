"""
Manual balance maintenance by an administrator.

Every create, correction and delete carries a reason and is written to the
audit log with the row's state before and after. Component values still go
through BalanceStore, so a correction that would leave the ledger
inconsistent is refused like any other write.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, StateConflictError, ValidationError
from app.models.employee import Employee
from app.models.leave_balance import LeaveBalance
from app.models.leave_type import LeaveType
from app.services.audit import AuditService
from app.services.balance_store import BalanceStore, EPSILON
from app.services.base import BaseService

logger = logging.getLogger(__name__)

BALANCE_ENTITY = "leave_balance"


def _require_reason(reason: Optional[str]) -> str:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError(["A reason is required for manual balance changes"])
    return reason


class BalanceAdminService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.balances = BalanceStore(db)
        self.audit = AuditService(db)

    def create(
        self,
        employee_id: int,
        leave_type_id: int,
        year: int,
        reason: str,
        user_id: Optional[int] = None,
        earned_days: float = 0.0,
        used_days: float = 0.0,
        monetized_days: float = 0.0,
        carried_forward: float = 0.0
    ) -> LeaveBalance:
        reason = _require_reason(reason)
        if self.db.get(Employee, employee_id) is None:
            raise NotFoundError("Employee not found")
        if self.db.get(LeaveType, leave_type_id) is None:
            raise NotFoundError("Leave type not found")

        try:
            if self.balances.get_for_update(employee_id, leave_type_id, year) is not None:
                raise StateConflictError(
                    f"Leave balance already exists for employee {employee_id}, "
                    f"leave type {leave_type_id}, year {year}"
                )
            balance = self.balances.create(
                employee_id, leave_type_id, year, earned_days=earned_days, carried_forward=carried_forward
            )
            if used_days or monetized_days:
                self.balances.adjust(balance, used_days=used_days, monetized_days=monetized_days)
            self._log("LEAVE_BALANCE_MANUAL_CREATE", balance, reason, user_id, None)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(balance)
        logger.info(f"Leave balance {balance.id} created manually for employee {employee_id}: {reason}")
        return balance

    def update(self, balance_id: int, reason: str, user_id: Optional[int] = None, **components: float) -> LeaveBalance:
        """Overwrite the given components; omitted ones keep their value."""
        reason = _require_reason(reason)
        if not components:
            raise ValidationError(["At least one balance component must be given"])
        try:
            balance = self.balances.get_by_id_for_update(balance_id)
            before = self.balances.snapshot(balance)
            self.balances.adjust(balance, **components)
            self._log("LEAVE_BALANCE_MANUAL_UPDATE", balance, reason, user_id, before)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(balance)
        return balance

    def delete(self, balance_id: int, reason: str, user_id: Optional[int] = None):
        reason = _require_reason(reason)
        try:
            balance = self.balances.get_by_id_for_update(balance_id)
            # Approved leave and monetizations point at this row
            if balance.used_days > EPSILON or balance.monetized_days > EPSILON:
                raise StateConflictError("Cannot delete a leave balance with used or monetized days")
            before = self.balances.snapshot(balance)
            self.audit.log_action(
                action="LEAVE_BALANCE_MANUAL_DELETE",
                entity_type=BALANCE_ENTITY,
                entity_id=balance.id,
                user_id=user_id,
                details=self._key(balance, reason),
                before_state=before
            )
            self.balances.delete(balance)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"Leave balance {balance_id} deleted manually: {reason}")

    def _log(self, action: str, balance: LeaveBalance, reason: str, user_id: Optional[int], before):
        self.audit.log_action(
            action=action,
            entity_type=BALANCE_ENTITY,
            entity_id=balance.id,
            user_id=user_id,
            details=self._key(balance, reason),
            before_state=before,
            after_state=self.balances.snapshot(balance)
        )

    @staticmethod
    def _key(balance: LeaveBalance, reason: str) -> dict:
        return {
            "employee_id": balance.employee_id,
            "leave_type_id": balance.leave_type_id,
            "year": balance.year,
            "reason": reason,
        }
