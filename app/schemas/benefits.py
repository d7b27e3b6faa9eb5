from pydantic import BaseModel, ConfigDict, Field, model_validator
from datetime import date, datetime
from typing import Annotated, Dict, List, Literal, Optional, Union

from app.models.terminal_leave_benefit import TLBStatus

class TLBCalculateRequest(BaseModel):
    employee_id: int
    separation_date: date
    claim_date: date

class TLBCalculationResponse(BaseModel):
    employee_id: int
    employee_name: str
    employee_number: str
    appointment_date: Optional[date] = None
    years_of_service: float
    total_leave_credits: float
    highest_monthly_salary: float
    constant_factor: float
    computed_amount: float
    claim_date: date
    separation_date: date
    warnings: List[str] = []

    model_config = ConfigDict(from_attributes=True)

class TLBCreate(BaseModel):
    """
    Explicit credits, salary or factor override the values derived from
    the ledger; omit them to compute from the employee's records.
    """
    employee_id: int
    claim_date: date
    separation_date: date
    total_leave_credits: Optional[float] = None
    highest_monthly_salary: Optional[float] = None
    constant_factor: Optional[float] = None
    processed_by: Optional[int] = None
    notes: Optional[str] = Field(default=None, max_length=1000)

class TLBResponse(BaseModel):
    id: int
    employee_id: int
    total_leave_credits: float
    highest_monthly_salary: float
    constant_factor: float
    computed_amount: float
    claim_date: date
    separation_date: date
    status: str
    processed_by: Optional[int] = None
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    paid_by: Optional[int] = None
    payment_date: Optional[datetime] = None
    check_number: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class TLBCreateResult(BaseModel):
    record: TLBResponse
    warnings: List[str] = []

# --- Status transitions (tagged union on "type") ---

class ApproveTransition(BaseModel):
    type: Literal["approve"]
    reviewer_id: int
    at: Optional[datetime] = None

class PayTransition(BaseModel):
    type: Literal["pay"]
    payer_id: int
    at: Optional[datetime] = None
    reference: Optional[str] = Field(default=None, max_length=50)

class SetStatusTransition(BaseModel):
    type: Literal["set_status"]
    status: TLBStatus

TransitionPayload = Annotated[
    Union[ApproveTransition, PayTransition, SetStatusTransition],
    Field(discriminator="type")
]

class TLBTransitionRequest(BaseModel):
    transition: TransitionPayload
    user_id: Optional[int] = None
    notes: Optional[str] = Field(default=None, max_length=1000)

class TLBBulkTransitionRequest(BaseModel):
    ids: List[int] = Field(..., min_length=1)
    transition: TransitionPayload
    user_id: Optional[int] = None

    @model_validator(mode="after")
    def _unique_ids(self):
        if len(set(self.ids)) != len(self.ids):
            raise ValueError("ids must not contain duplicates")
        return self

class TLBStatisticsResponse(BaseModel):
    summary: Dict[str, Union[int, float]]
    status_breakdown: Dict[str, int]

class TLBUpdate(BaseModel):
    """Status is changed through the transition endpoint only."""
    notes: Optional[str] = Field(default=None, max_length=1000)
    check_number: Optional[str] = Field(default=None, max_length=50)
    payment_date: Optional[datetime] = None
    user_id: Optional[int] = None

    model_config = ConfigDict(extra="forbid")

class TLBStatusSummary(BaseModel):
    status: str
    record_count: int
    total_amount: float
    average_amount: float
    min_amount: float
    max_amount: float

class TLBSummaryRecord(BaseModel):
    id: int
    employee_id: int
    employee_name: str
    employee_number: str
    claim_date: date
    separation_date: date
    computed_amount: float
    status: str

class TLBSummaryReport(BaseModel):
    by_status: List[TLBStatusSummary]
    records: List[TLBSummaryRecord]
    total_records: int
    total_amount: float

TLBCreateResult.model_rebuild()
