from pydantic import BaseModel, ConfigDict, Field
from datetime import date
from typing import Optional

from app.models.employee import EmploymentStatus

class EmployeeCreate(BaseModel):
    employee_number: str = Field(..., min_length=1, max_length=50)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    appointment_date: Optional[date] = None
    employment_status: EmploymentStatus = EmploymentStatus.ACTIVE
    current_monthly_salary: Optional[float] = Field(default=None, ge=0)
    separation_date: Optional[date] = None

class EmployeeUpdate(BaseModel):
    appointment_date: Optional[date] = None
    employment_status: Optional[EmploymentStatus] = None
    current_monthly_salary: Optional[float] = Field(default=None, ge=0)
    separation_date: Optional[date] = None

class EmployeeResponse(BaseModel):
    id: int
    employee_number: str
    first_name: str
    last_name: str
    appointment_date: Optional[date] = None
    employment_status: str
    current_monthly_salary: Optional[float] = None
    separation_date: Optional[date] = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)

class ServiceRecordCreate(BaseModel):
    position: Optional[str] = Field(default=None, max_length=150)
    salary: float = Field(..., gt=0)
    date_from: Optional[date] = None
    date_to: Optional[date] = None

class ServiceRecordResponse(ServiceRecordCreate):
    id: int
    employee_id: int

    model_config = ConfigDict(from_attributes=True)
