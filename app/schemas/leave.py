from pydantic import BaseModel, ConfigDict, Field, model_validator
from datetime import date, datetime
from typing import Dict, List, Optional

# --- Leave types ---

class LeaveTypeBase(BaseModel):
    code: str = Field(..., min_length=1, max_length=10)
    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    max_days_per_year: Optional[float] = Field(default=None, ge=0)
    is_monetizable: bool = False
    requires_medical_certificate: bool = False

class LeaveTypeCreate(LeaveTypeBase):
    pass

class LeaveTypeUpdate(BaseModel):
    code: Optional[str] = Field(default=None, min_length=1, max_length=10)
    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = None
    max_days_per_year: Optional[float] = Field(default=None, ge=0)
    is_monetizable: Optional[bool] = None
    requires_medical_certificate: Optional[bool] = None

class LeaveTypeResponse(LeaveTypeBase):
    id: int
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

# --- Applications ---

class LeaveApplicationCreate(BaseModel):
    employee_id: int
    leave_type_id: int
    start_date: date
    end_date: date
    days_requested: float
    reason: Optional[str] = Field(default=None, max_length=1000)

class LeaveApplicationUpdate(BaseModel):
    """Only the fields sent are changed."""
    leave_type_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    days_requested: Optional[float] = None
    reason: Optional[str] = Field(default=None, max_length=1000)
    user_id: Optional[int] = None

class LeaveApplicationOnBehalf(LeaveApplicationCreate):
    reviewer_id: int
    auto_approve: bool = False

class LeaveApplicationResponse(BaseModel):
    id: int
    application_number: str
    employee_id: int
    leave_type_id: int
    start_date: date
    end_date: date
    days_requested: float
    reason: Optional[str] = None
    status: str
    applied_at: Optional[datetime] = None
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

class LeaveApplicationResult(BaseModel):
    """A created or reviewed application together with non-blocking warnings."""
    application: LeaveApplicationResponse
    warnings: List[str] = []

class ReviewRequest(BaseModel):
    reviewer_id: int
    notes: Optional[str] = Field(default=None, max_length=1000)

class CancelRequest(BaseModel):
    user_id: Optional[int] = None

class ValidationReport(BaseModel):
    is_valid: bool
    errors: List[str]
    warnings: List[str]

class CalendarEntry(BaseModel):
    id: int
    application_number: str
    employee_id: int
    employee_name: str
    leave_type: str
    start_date: date
    end_date: date
    days_requested: float
    status: str

class WorkingDaysResponse(BaseModel):
    start_date: date
    end_date: date
    working_days: int
    calendar_days: int

# --- Balances ---

class LeaveBalanceResponse(BaseModel):
    id: int
    employee_id: int
    leave_type_id: int
    leave_type_code: Optional[str] = None
    year: int
    earned_days: float
    used_days: float
    monetized_days: float
    carried_forward: float
    current_balance: float

    model_config = ConfigDict(from_attributes=True)

class BalanceCreateRequest(BaseModel):
    employee_id: int
    leave_type_id: int
    year: int
    earned_days: float = Field(default=0.0, ge=0)
    used_days: float = Field(default=0.0, ge=0)
    monetized_days: float = Field(default=0.0, ge=0)
    carried_forward: float = Field(default=0.0, ge=0)
    reason: str = Field(..., min_length=1, max_length=500)
    user_id: Optional[int] = None

class BalanceUpdateRequest(BaseModel):
    earned_days: Optional[float] = Field(default=None, ge=0)
    used_days: Optional[float] = Field(default=None, ge=0)
    monetized_days: Optional[float] = Field(default=None, ge=0)
    carried_forward: Optional[float] = Field(default=None, ge=0)
    reason: str = Field(..., min_length=1, max_length=500)
    user_id: Optional[int] = None

class InitializeYearRequest(BaseModel):
    employee_id: int
    year: int
    appointment_date: Optional[date] = None

class InitializeYearResponse(BaseModel):
    employee_id: int
    year: int
    prorated_months: int
    created: Dict[str, float]
    skipped: List[str]

class MonetizeRequest(BaseModel):
    employee_id: int
    leave_type_id: int
    year: int
    days_to_monetize: float = Field(..., gt=0)
    processed_by: Optional[int] = None
    reference: Optional[str] = Field(default=None, max_length=64)

class MonetizationResponse(BaseModel):
    id: int
    employee_id: int
    leave_type_id: int
    year: int
    days_monetized: float
    daily_rate: float
    amount: float
    balance_before: float
    balance_after: float
    processed_by: Optional[int] = None
    reference: Optional[str] = None
    created_at: Optional[datetime] = None
    replayed: bool = False

    model_config = ConfigDict(from_attributes=True)

class CarryForwardRequest(BaseModel):
    from_year: int
    to_year: int
    employee_id: Optional[int] = None

    @model_validator(mode="after")
    def _years_in_order(self):
        if self.to_year <= self.from_year:
            raise ValueError("to_year must be after from_year")
        return self

# --- Accrual ---

class AccrualRunRequest(BaseModel):
    year: int
    month: int = Field(..., ge=1, le=12)
    employee_ids: Optional[List[int]] = None

class EmployeeAccrualRequest(BaseModel):
    employee_id: int
    year: int
    month: int = Field(..., ge=1, le=12)

# --- Settings ---

class SettingUpdate(BaseModel):
    value: float

LeaveApplicationResult.model_rebuild()
