"""
Balance Store

Owns every write to leave_balances. Callers hand it a locked row and an
intent (use, monetize, accrue, carry forward); the store applies the
component change and re-derives current_balance:

    current_balance = earned_days + carried_forward - used_days - monetized_days

A derived balance below zero, or above earned_days + carried_forward, is
an invariant violation and raises LedgerInvariantError. Nothing is
clamped. Callers own the transaction; the store only flushes.
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import LedgerInvariantError, NotFoundError
from app.models.leave_balance import LeaveBalance
from app.models.leave_type import LeaveType

logger = logging.getLogger(__name__)

# Float columns accumulate representation noise; compare with a small tolerance
EPSILON = 1e-6


def round_days(value: float) -> float:
    # "+ 0.0" folds -0.0 into 0.0
    return round(float(value or 0.0), 2) + 0.0


class BalanceStore:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get(self, employee_id: int, leave_type_id: int, year: int) -> Optional[LeaveBalance]:
        return self.db.query(LeaveBalance).filter(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type_id == leave_type_id,
            LeaveBalance.year == year
        ).first()

    def get_for_update(self, employee_id: int, leave_type_id: int, year: int) -> Optional[LeaveBalance]:
        """
        Read a balance row under a row-level lock.

        The lock is held until the caller commits or rolls back, so two
        approvals against the same (employee, leave type, year) serialize and
        the second one sees the first one's deduction.
        """
        return self.db.query(LeaveBalance).filter(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type_id == leave_type_id,
            LeaveBalance.year == year
        ).with_for_update().populate_existing().first()

    def require_for_update(self, employee_id: int, leave_type_id: int, year: int) -> LeaveBalance:
        balance = self.get_for_update(employee_id, leave_type_id, year)
        if balance is None:
            raise NotFoundError(
                f"Leave balance not found for employee {employee_id}, "
                f"leave type {leave_type_id}, year {year}"
            )
        return balance

    def get_by_id_for_update(self, balance_id: int) -> LeaveBalance:
        balance = self.db.query(LeaveBalance).filter(
            LeaveBalance.id == balance_id
        ).with_for_update().populate_existing().first()
        if balance is None:
            raise NotFoundError("Leave balance record not found")
        return balance

    def list_for_employee(self, employee_id: int, year: Optional[int] = None) -> List[LeaveBalance]:
        query = self.db.query(LeaveBalance).filter(LeaveBalance.employee_id == employee_id)
        if year is not None:
            query = query.filter(LeaveBalance.year == year)
        return query.order_by(LeaveBalance.year, LeaveBalance.leave_type_id).all()

    def list_for_codes(self, employee_id: int, year: int, codes, lock: bool = False) -> List[LeaveBalance]:
        query = self.db.query(LeaveBalance).join(LeaveType).filter(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.year == year,
            LeaveType.code.in_(list(codes))
        )
        if lock:
            query = query.with_for_update(of=LeaveBalance).populate_existing()
        return query.all()

    def has_balances(self, employee_id: int, year: int) -> bool:
        return self.db.query(LeaveBalance.id).filter(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.year == year
        ).first() is not None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def create(
        self,
        employee_id: int,
        leave_type_id: int,
        year: int,
        earned_days: float = 0.0,
        carried_forward: float = 0.0
    ) -> LeaveBalance:
        balance = LeaveBalance(
            employee_id=employee_id,
            leave_type_id=leave_type_id,
            year=year,
            earned_days=round_days(earned_days),
            used_days=0.0,
            monetized_days=0.0,
            carried_forward=round_days(carried_forward)
        )
        self._recompute(balance)
        self.db.add(balance)
        self.db.flush()
        return balance

    def get_or_create_for_update(self, employee_id: int, leave_type_id: int, year: int) -> LeaveBalance:
        balance = self.get_for_update(employee_id, leave_type_id, year)
        if balance is None:
            balance = self.create(employee_id, leave_type_id, year)
        return balance

    def apply_usage(self, balance: LeaveBalance, days: float) -> LeaveBalance:
        """Deduct approved leave days."""
        return self._mutate(balance, used_days=balance.used_days + days)

    def apply_monetization(self, balance: LeaveBalance, days: float) -> LeaveBalance:
        return self._mutate(balance, monetized_days=balance.monetized_days + days)

    def apply_accrual(self, balance: LeaveBalance, days: float) -> LeaveBalance:
        return self._mutate(balance, earned_days=balance.earned_days + days)

    def set_carried_forward(self, balance: LeaveBalance, days: float) -> LeaveBalance:
        return self._mutate(balance, carried_forward=days)

    def adjust(self, balance: LeaveBalance, **components: float) -> LeaveBalance:
        """Manual correction of one or more components by an administrator."""
        allowed = {"earned_days", "used_days", "monetized_days", "carried_forward"}
        unknown = set(components) - allowed
        if unknown:
            raise ValueError(f"Unknown balance components: {sorted(unknown)}")
        return self._mutate(balance, **components)

    def delete(self, balance: LeaveBalance):
        self.db.delete(balance)
        self.db.flush()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _mutate(self, balance: LeaveBalance, **components: float) -> LeaveBalance:
        before = self.snapshot(balance)
        for name, value in components.items():
            setattr(balance, name, round_days(value))
        self._recompute(balance)
        self.db.flush()
        logger.info(
            "leave balance updated",
            extra={
                "employee_id": balance.employee_id,
                "leave_type_id": balance.leave_type_id,
                "year": balance.year,
                "before": before,
                "after": self.snapshot(balance),
            },
        )
        return balance

    @staticmethod
    def _recompute(balance: LeaveBalance):
        components = {
            "earned_days": balance.earned_days or 0.0,
            "used_days": balance.used_days or 0.0,
            "monetized_days": balance.monetized_days or 0.0,
            "carried_forward": balance.carried_forward or 0.0,
        }
        for name, value in components.items():
            if value < -EPSILON:
                raise LedgerInvariantError(f"{name} cannot be negative", details=components)

        entitlement = balance.entitlement
        current = round_days(entitlement - components["used_days"] - components["monetized_days"])
        if current < -EPSILON:
            raise LedgerInvariantError(
                f"Leave balance would become negative ({current:.2f} days)",
                details=components
            )
        if current > entitlement + EPSILON:
            raise LedgerInvariantError(
                "Leave balance cannot exceed earned plus carried-forward days",
                details=components
            )
        balance.current_balance = current

    @staticmethod
    def snapshot(balance: LeaveBalance) -> Dict[str, float]:
        return {
            "earned_days": balance.earned_days,
            "used_days": balance.used_days,
            "monetized_days": balance.monetized_days,
            "carried_forward": balance.carried_forward,
            "current_balance": balance.current_balance,
        }
