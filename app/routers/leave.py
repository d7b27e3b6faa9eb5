from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from app.core.exceptions import ValidationError
from app.dependencies import lifecycle_service
from app.schemas.leave import (
    CalendarEntry,
    CancelRequest,
    LeaveApplicationCreate,
    LeaveApplicationOnBehalf,
    LeaveApplicationResponse,
    LeaveApplicationResult,
    LeaveApplicationUpdate,
    ReviewRequest,
    ValidationReport,
    WorkingDaysResponse,
)
from app.services.eligibility import calculate_calendar_days, calculate_working_days
from app.services.leave_lifecycle import LeaveLifecycleService, LifecycleResult

router = APIRouter(prefix="/leave", tags=["Leave Applications"])


def _result(result: LifecycleResult) -> LeaveApplicationResult:
    return LeaveApplicationResult(
        application=LeaveApplicationResponse.model_validate(result.application),
        warnings=result.warnings
    )


@router.post("/applications", response_model=LeaveApplicationResult, status_code=status.HTTP_201_CREATED)
def create_application(
    payload: LeaveApplicationCreate,
    service: LeaveLifecycleService = Depends(lifecycle_service)
):
    """
    Submit a leave application.
    Blocking rule failures return 422 with every message; a balance
    shortfall on its own returns 400 with the available and requested days.
    """
    return _result(service.create(**payload.model_dump()))


@router.post("/applications/on-behalf", response_model=LeaveApplicationResult, status_code=status.HTTP_201_CREATED)
def create_application_on_behalf(
    payload: LeaveApplicationOnBehalf,
    service: LeaveLifecycleService = Depends(lifecycle_service)
):
    data = payload.model_dump()
    reviewer_id = data.pop("reviewer_id")
    auto_approve = data.pop("auto_approve")
    return _result(service.create_on_behalf(reviewer_id, auto_approve=auto_approve, **data))


@router.post("/applications/validate", response_model=ValidationReport)
def validate_application(
    payload: LeaveApplicationCreate,
    service: LeaveLifecycleService = Depends(lifecycle_service)
):
    """Run every eligibility rule without saving anything."""
    result = service.dry_run(**payload.model_dump())
    return ValidationReport(is_valid=result.is_valid, errors=result.errors, warnings=result.warnings)


@router.get("/applications", response_model=List[LeaveApplicationResponse])
def list_applications(
    employee_id: Optional[int] = None,
    status: Optional[str] = None,
    leave_type_id: Optional[int] = None,
    year: Optional[int] = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    service: LeaveLifecycleService = Depends(lifecycle_service)
):
    return service.list(
        employee_id=employee_id,
        status=status,
        leave_type_id=leave_type_id,
        year=year,
        limit=limit,
        offset=offset
    )


@router.get("/applications/{application_id}", response_model=LeaveApplicationResponse)
def get_application(application_id: int, service: LeaveLifecycleService = Depends(lifecycle_service)):
    return service.get(application_id)


@router.put("/applications/{application_id}", response_model=LeaveApplicationResult)
def update_application(
    application_id: int,
    payload: LeaveApplicationUpdate,
    service: LeaveLifecycleService = Depends(lifecycle_service)
):
    """Edit a pending application; the edited values are validated like a new submission."""
    changes = payload.model_dump(exclude_unset=True)
    user_id = changes.pop("user_id", None)
    return _result(service.update(application_id, user_id=user_id, **changes))


@router.post("/applications/{application_id}/approve", response_model=LeaveApplicationResult)
def approve_application(
    application_id: int,
    review: ReviewRequest,
    service: LeaveLifecycleService = Depends(lifecycle_service)
):
    return _result(service.approve(application_id, review.reviewer_id, review.notes))


@router.post("/applications/{application_id}/reject", response_model=LeaveApplicationResult)
def reject_application(
    application_id: int,
    review: ReviewRequest,
    service: LeaveLifecycleService = Depends(lifecycle_service)
):
    return _result(service.reject(application_id, review.reviewer_id, review.notes))


@router.post("/applications/{application_id}/cancel", response_model=LeaveApplicationResult)
def cancel_application(
    application_id: int,
    payload: Optional[CancelRequest] = None,
    service: LeaveLifecycleService = Depends(lifecycle_service)
):
    return _result(service.cancel(application_id, payload.user_id if payload else None))


@router.get("/pending", response_model=List[LeaveApplicationResponse])
def pending_applications(service: LeaveLifecycleService = Depends(lifecycle_service)):
    return service.pending()


@router.get("/calendar", response_model=List[CalendarEntry])
def leave_calendar(
    start_date: date,
    end_date: date,
    exclude_employee_id: Optional[int] = None,
    service: LeaveLifecycleService = Depends(lifecycle_service)
):
    if start_date > end_date:
        raise ValidationError(["Start date cannot be after end date"])
    return [
        CalendarEntry(
            id=a.id,
            application_number=a.application_number,
            employee_id=a.employee_id,
            employee_name=a.employee.full_name,
            leave_type=a.leave_type.name,
            start_date=a.start_date,
            end_date=a.end_date,
            days_requested=a.days_requested,
            status=a.status
        )
        for a in service.calendar(start_date, end_date, exclude_employee_id)
    ]


@router.get("/working-days", response_model=WorkingDaysResponse)
def working_days(start_date: date, end_date: date):
    if start_date > end_date:
        raise ValidationError(["Start date cannot be after end date"])
    return WorkingDaysResponse(
        start_date=start_date,
        end_date=end_date,
        working_days=calculate_working_days(start_date, end_date),
        calendar_days=calculate_calendar_days(start_date, end_date)
    )
