from dataclasses import asdict
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError
from app.core.limiter import limiter
from app.database import get_db
from app.dependencies import (
    accrual_job,
    accrual_processor,
    carry_forward_processor,
    ledger_settings,
    monetization_processor,
)
from app.models.employee import Employee
from app.schemas.leave import (
    AccrualRunRequest,
    BalanceCreateRequest,
    BalanceUpdateRequest,
    CarryForwardRequest,
    EmployeeAccrualRequest,
    InitializeYearRequest,
    InitializeYearResponse,
    LeaveBalanceResponse,
    MonetizationResponse,
    MonetizeRequest,
    SettingUpdate,
)
from app.services.accrual import AccrualProcessor, MonthlyAccrualJob
from app.services.balance_admin import BalanceAdminService
from app.services.balance_store import BalanceStore
from app.services.carry_forward import CarryForwardProcessor
from app.services.monetization import MonetizationProcessor
from app.services.settings_service import LedgerSettings, SettingsService

router = APIRouter(prefix="/leave", tags=["Leave Balances"])


@router.get("/balances/{employee_id}", response_model=List[LeaveBalanceResponse])
def employee_balances(employee_id: int, year: Optional[int] = None, db: Session = Depends(get_db)):
    if db.get(Employee, employee_id) is None:
        raise NotFoundError("Employee not found")
    return BalanceStore(db).list_for_employee(employee_id, year)


@router.post("/balances", response_model=LeaveBalanceResponse, status_code=status.HTTP_201_CREATED)
def create_balance(payload: BalanceCreateRequest, db: Session = Depends(get_db)):
    """Manually create a balance row. The reason is kept in the audit log."""
    return BalanceAdminService(db).create(**payload.model_dump())


@router.put("/balances/{balance_id}", response_model=LeaveBalanceResponse)
def update_balance(balance_id: int, payload: BalanceUpdateRequest, db: Session = Depends(get_db)):
    changes = payload.model_dump(exclude_none=True)
    reason = changes.pop("reason")
    user_id = changes.pop("user_id", None)
    return BalanceAdminService(db).update(balance_id, reason, user_id=user_id, **changes)


@router.delete("/balances/{balance_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_balance(balance_id: int, reason: str, user_id: Optional[int] = None, db: Session = Depends(get_db)):
    """Rows with used or monetized days cannot be deleted (409)."""
    BalanceAdminService(db).delete(balance_id, reason, user_id=user_id)


@router.post("/balances/initialize", response_model=InitializeYearResponse)
def initialize_year(payload: InitializeYearRequest, processor: AccrualProcessor = Depends(accrual_processor)):
    """Create prorated balance rows for every leave type. Existing rows are kept."""
    result = processor.initialize_year(payload.employee_id, payload.year, payload.appointment_date)
    return asdict(result)


@router.post("/balances/monetize", response_model=MonetizationResponse)
def monetize_leave(payload: MonetizeRequest, processor: MonetizationProcessor = Depends(monetization_processor)):
    result = processor.monetize(
        payload.employee_id,
        payload.leave_type_id,
        payload.year,
        payload.days_to_monetize,
        processed_by=payload.processed_by,
        reference=payload.reference
    )
    response = MonetizationResponse.model_validate(result.transaction)
    response.replayed = result.replayed
    return response


@router.get("/balances/{employee_id}/monetizations", response_model=List[MonetizationResponse])
def monetization_history(
    employee_id: int,
    year: Optional[int] = None,
    processor: MonetizationProcessor = Depends(monetization_processor)
):
    return processor.history(employee_id, year)


@router.post("/balances/carry-forward")
def carry_forward(
    payload: CarryForwardRequest,
    processor: CarryForwardProcessor = Depends(carry_forward_processor)
) -> Dict[str, Any]:
    """Roll VL/SL into the next year for one employee, or for every active employee."""
    if payload.employee_id is not None:
        return asdict(processor.process(payload.employee_id, payload.from_year, payload.to_year))
    return processor.process_all(payload.from_year, payload.to_year)


@router.post("/accrual/run")
@limiter.limit("5/minute")
def run_monthly_accrual(
    request: Request,
    payload: AccrualRunRequest,
    job: MonthlyAccrualJob = Depends(accrual_job)
) -> Dict[str, Any]:
    return asdict(job.run(payload.year, payload.month, payload.employee_ids))


@router.post("/accrual/dry-run")
def dry_run_monthly_accrual(payload: AccrualRunRequest, job: MonthlyAccrualJob = Depends(accrual_job)) -> Dict[str, Any]:
    return job.dry_run(payload.year, payload.month, payload.employee_ids)


@router.post("/accrual/employee")
def accrue_employee(
    payload: EmployeeAccrualRequest,
    processor: AccrualProcessor = Depends(accrual_processor)
) -> Dict[str, Any]:
    """Accrue one employee for one month. A repeated call reports processed=false."""
    return asdict(processor.process_monthly_accrual(payload.employee_id, payload.year, payload.month))


@router.get("/settings", response_model=LedgerSettings)
def get_settings(settings: LedgerSettings = Depends(ledger_settings)):
    return settings


@router.put("/settings/{key}", response_model=LedgerSettings)
def update_setting(key: str, payload: SettingUpdate, db: Session = Depends(get_db)):
    return SettingsService(db).update(key, payload.value)
