"""
Year-end carry-forward of unused VL/SL days.

The carried amount is written as an absolute value on the target year's
row, never added to it, so processing the same rollover twice leaves the
ledger unchanged.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, ValidationError
from app.models.employee import Employee, EmploymentStatus
from app.models.leave_balance import LeaveBalance
from app.models.leave_type import ACCRUING_LEAVE_CODES
from app.services.audit import AuditService
from app.services.balance_store import BalanceStore, round_days
from app.services.base import BaseService
from app.services.settings_service import LedgerSettings

logger = logging.getLogger(__name__)


@dataclass
class CarryForwardResult:
    employee_id: int
    from_year: int
    to_year: int
    carried: Dict[str, float] = field(default_factory=dict)


class CarryForwardProcessor(BaseService):
    def __init__(self, db: Session, ledger_settings: LedgerSettings):
        super().__init__(db)
        self.settings = ledger_settings
        self.balances = BalanceStore(db)
        self.audit = AuditService(db)

    def process(self, employee_id: int, from_year: int, to_year: int) -> CarryForwardResult:
        if to_year <= from_year:
            raise ValidationError(["Target year must be after the source year"])
        if self.db.get(Employee, employee_id) is None:
            raise NotFoundError("Employee not found")

        cap = self.settings.max_carry_forward_days
        result = CarryForwardResult(employee_id=employee_id, from_year=from_year, to_year=to_year)
        try:
            sources = self.balances.list_for_codes(employee_id, from_year, ACCRUING_LEAVE_CODES, lock=True)
            for source in sources:
                carry = round_days(min(max(source.current_balance or 0.0, 0.0), cap))
                if carry <= 0:
                    # Nothing left to carry; clear an earlier rollover on re-run
                    target = self.balances.get_for_update(employee_id, source.leave_type_id, to_year)
                    if target is None or not target.carried_forward:
                        continue
                else:
                    target = self.balances.get_or_create_for_update(employee_id, source.leave_type_id, to_year)
                self.balances.set_carried_forward(target, carry)
                result.carried[source.leave_type.code] = carry

            if result.carried:
                self.audit.log_action(
                    action="LEAVE_CARRY_FORWARD",
                    entity_type="leave_balance",
                    entity_id=employee_id,
                    details={
                        "from_year": from_year,
                        "to_year": to_year,
                        "max_carry_forward_days": cap,
                        "carried": result.carried,
                    }
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Carry-forward {from_year}->{to_year} for employee {employee_id}: {result.carried}")
        return result

    def process_all(self, from_year: int, to_year: int, employee_ids: Optional[List[int]] = None) -> Dict[str, Any]:
        """Run the rollover for every active employee with balances in `from_year`."""
        query = self.db.query(Employee.id).join(LeaveBalance, LeaveBalance.employee_id == Employee.id).filter(
            Employee.employment_status == EmploymentStatus.ACTIVE.value,
            LeaveBalance.year == from_year
        ).distinct()
        if employee_ids:
            query = query.filter(Employee.id.in_(employee_ids))
        ids = [employee_id for (employee_id,) in query.order_by(Employee.id).all()]

        summary = {
            "from_year": from_year,
            "to_year": to_year,
            "total_employees": len(ids),
            "processed": 0,
            "failed": 0,
            "details": [],
        }
        for employee_id in ids:
            try:
                result = self.process(employee_id, from_year, to_year)
            except Exception as exc:
                logger.error(f"Carry-forward failed for employee {employee_id}: {exc}", exc_info=True)
                summary["failed"] += 1
                summary["details"].append({"employee_id": employee_id, "success": False, "error": str(exc)})
                continue
            summary["processed"] += 1
            summary["details"].append({"employee_id": employee_id, "success": True, "carried": result.carried})
        return summary
