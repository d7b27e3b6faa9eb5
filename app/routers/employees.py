from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, ValidationError
from app.database import get_db
from app.models.employee import Employee, ServiceRecord
from app.schemas.employee import (
    EmployeeCreate,
    EmployeeResponse,
    EmployeeUpdate,
    ServiceRecordCreate,
    ServiceRecordResponse,
)
from app.services.audit import AuditService

# Minimal directory surface: the ledger only needs appointment, status and salary data
router = APIRouter(prefix="/employees", tags=["Employees"])


def _get_employee(db: Session, employee_id: int) -> Employee:
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise NotFoundError("Employee not found")
    return employee


@router.post("", response_model=EmployeeResponse, status_code=status.HTTP_201_CREATED)
def create_employee(payload: EmployeeCreate, db: Session = Depends(get_db)):
    exists = db.query(Employee.id).filter(Employee.employee_number == payload.employee_number).first()
    if exists:
        raise ValidationError([f"Employee number '{payload.employee_number}' already exists"])
    data = payload.model_dump()
    data["employment_status"] = payload.employment_status.value
    employee = Employee(**data)
    db.add(employee)
    try:
        db.flush()
        AuditService.log(db, "employee_created", "employee", employee.id, details=payload.model_dump())
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(employee)
    return employee


@router.get("", response_model=List[EmployeeResponse])
def list_employees(employment_status: Optional[str] = None, db: Session = Depends(get_db)):
    query = db.query(Employee)
    if employment_status:
        query = query.filter(Employee.employment_status == employment_status)
    return query.order_by(Employee.last_name, Employee.first_name).all()


@router.get("/{employee_id}", response_model=EmployeeResponse)
def get_employee(employee_id: int, db: Session = Depends(get_db)):
    return _get_employee(db, employee_id)


@router.patch("/{employee_id}", response_model=EmployeeResponse)
def update_employee(employee_id: int, payload: EmployeeUpdate, db: Session = Depends(get_db)):
    employee = _get_employee(db, employee_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        if key == "employment_status" and value is not None:
            value = value.value
        setattr(employee, key, value)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(employee)
    return employee


@router.post(
    "/{employee_id}/service-records",
    response_model=ServiceRecordResponse,
    status_code=status.HTTP_201_CREATED
)
def add_service_record(employee_id: int, payload: ServiceRecordCreate, db: Session = Depends(get_db)):
    _get_employee(db, employee_id)
    record = ServiceRecord(employee_id=employee_id, **payload.model_dump())
    db.add(record)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(record)
    return record
