"""
Leave Monetization

Converts unused VL/SL days into a payable amount. The balance deduction and
the MonetizationTransaction row are written in one transaction; the row is
never updated afterwards. A caller-supplied `reference` makes a replayed
request return the original transaction instead of deducting again.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import InsufficientBalanceError, NotFoundError, StateConflictError, ValidationError
from app.models.employee import Employee
from app.models.leave_type import LeaveType
from app.models.monetization import MonetizationTransaction
from app.services.audit import AuditService
from app.services.balance_store import BalanceStore, EPSILON, round_days
from app.services.base import BaseService
from app.services.settings_service import LedgerSettings

logger = logging.getLogger(__name__)


@dataclass
class MonetizationResult:
    transaction: MonetizationTransaction
    replayed: bool = False


class MonetizationProcessor(BaseService):
    def __init__(self, db: Session, ledger_settings: LedgerSettings):
        super().__init__(db)
        self.settings = ledger_settings
        self.balances = BalanceStore(db)
        self.audit = AuditService(db)

    def daily_rate(self, employee: Employee) -> float:
        salary = employee.current_monthly_salary or 0.0
        return round(salary / self.settings.working_days_per_month, 2)

    def monetize(
        self,
        employee_id: int,
        leave_type_id: int,
        year: int,
        days: float,
        processed_by: Optional[int] = None,
        reference: Optional[str] = None
    ) -> MonetizationResult:
        if days is None or days <= 0:
            raise ValidationError(["Days to monetize must be greater than 0"])

        if reference:
            existing = self.find_by_reference(reference)
            if existing is not None:
                if (existing.employee_id, existing.leave_type_id, existing.year, existing.days_monetized) != (
                    employee_id, leave_type_id, year, round_days(days)
                ):
                    raise StateConflictError(
                        f"Monetization reference {reference} was already used for a different request"
                    )
                logger.info(f"Monetization {reference} already processed, returning original transaction")
                return MonetizationResult(transaction=existing, replayed=True)

        employee = self.db.get(Employee, employee_id)
        if employee is None:
            raise NotFoundError("Employee not found")
        leave_type = self.db.get(LeaveType, leave_type_id)
        if leave_type is None:
            raise NotFoundError("Leave type not found")
        if not leave_type.is_monetizable:
            raise ValidationError([f"Leave type {leave_type.code} is not monetizable"])

        try:
            balance = self.balances.require_for_update(employee_id, leave_type_id, year)
            before = balance.current_balance
            if days > before + EPSILON:
                raise InsufficientBalanceError(available=before, requested=days)

            self.balances.apply_monetization(balance, days)
            rate = self.daily_rate(employee)
            transaction = MonetizationTransaction(
                employee_id=employee_id,
                leave_type_id=leave_type_id,
                year=year,
                days_monetized=round_days(days),
                daily_rate=rate,
                amount=round(days * rate, 2),
                balance_before=before,
                balance_after=balance.current_balance,
                processed_by=processed_by,
                reference=reference
            )
            self.db.add(transaction)
            self.db.flush()
            self.audit.log_action(
                action="leave_monetized",
                entity_type="leave_balance",
                entity_id=balance.id,
                user_id=processed_by,
                details={
                    "employee_id": employee_id,
                    "leave_type": leave_type.code,
                    "year": year,
                    "days": days,
                    "amount": transaction.amount,
                    "reference": reference,
                }
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(transaction)
        logger.info(
            f"Monetized {days} {leave_type.code} days for employee {employee_id} "
            f"({transaction.amount:.2f})"
        )
        return MonetizationResult(transaction=transaction)

    def find_by_reference(self, reference: str) -> Optional[MonetizationTransaction]:
        return self.db.query(MonetizationTransaction).filter(
            MonetizationTransaction.reference == reference
        ).first()

    def history(self, employee_id: int, year: Optional[int] = None) -> List[MonetizationTransaction]:
        query = self.db.query(MonetizationTransaction).filter(
            MonetizationTransaction.employee_id == employee_id
        )
        if year is not None:
            query = query.filter(MonetizationTransaction.year == year)
        return query.order_by(MonetizationTransaction.created_at, MonetizationTransaction.id).all()
