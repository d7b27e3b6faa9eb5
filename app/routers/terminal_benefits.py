from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from app.dependencies import tlb_calculator, tlb_service
from app.schemas.benefits import (
    ApproveTransition,
    PayTransition,
    TLBBulkTransitionRequest,
    TLBCalculateRequest,
    TLBCalculationResponse,
    TLBCreate,
    TLBCreateResult,
    TLBResponse,
    TLBStatisticsResponse,
    TLBSummaryReport,
    TLBTransitionRequest,
    TLBUpdate,
    TransitionPayload,
)
from app.services.terminal_benefits import (
    Approve,
    Pay,
    SetStatus,
    TerminalBenefitCalculator,
    TerminalBenefitService,
    Transition,
)

router = APIRouter(prefix="/tlb", tags=["Terminal Leave Benefits"])


def to_transition(payload: TransitionPayload) -> Transition:
    if isinstance(payload, ApproveTransition):
        return Approve(reviewer=payload.reviewer_id, at=payload.at)
    if isinstance(payload, PayTransition):
        return Pay(payer=payload.payer_id, at=payload.at, reference=payload.reference)
    return SetStatus(status=payload.status)


@router.post("/calculate", response_model=TLBCalculationResponse)
def calculate_tlb(payload: TLBCalculateRequest, calculator: TerminalBenefitCalculator = Depends(tlb_calculator)):
    """Compute the benefit from the employee's ledger without saving a record."""
    return asdict(calculator.calculate(
        payload.employee_id,
        separation_date=payload.separation_date,
        claim_date=payload.claim_date
    ))


@router.get("/statistics", response_model=TLBStatisticsResponse)
def tlb_statistics(year: Optional[int] = None, service: TerminalBenefitService = Depends(tlb_service)):
    return service.statistics(year)


@router.get("/reports/summary", response_model=TLBSummaryReport)
def tlb_summary_report(
    year: Optional[int] = None,
    status: Optional[str] = None,
    service: TerminalBenefitService = Depends(tlb_service)
):
    return service.summary_report(year=year, status=status)


@router.post("", response_model=TLBCreateResult, status_code=status.HTTP_201_CREATED)
def create_tlb(payload: TLBCreate, service: TerminalBenefitService = Depends(tlb_service)):
    record, warnings = service.create(**payload.model_dump())
    return TLBCreateResult(record=TLBResponse.model_validate(record), warnings=warnings)


@router.get("", response_model=List[TLBResponse])
def list_tlb(
    status: Optional[str] = None,
    employee_id: Optional[int] = None,
    year: Optional[int] = None,
    search: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    service: TerminalBenefitService = Depends(tlb_service)
):
    return service.list(
        status=status,
        employee_id=employee_id,
        year=year,
        search=search,
        limit=limit,
        offset=offset
    )


@router.post("/bulk-transition", response_model=List[TLBResponse])
def bulk_transition(payload: TLBBulkTransitionRequest, service: TerminalBenefitService = Depends(tlb_service)):
    """All listed records change status, or none do."""
    return service.bulk_transition(payload.ids, to_transition(payload.transition), user_id=payload.user_id)


@router.get("/{record_id}", response_model=TLBResponse)
def get_tlb(record_id: int, service: TerminalBenefitService = Depends(tlb_service)):
    return service.get(record_id)


@router.put("/{record_id}", response_model=TLBResponse)
def update_tlb(record_id: int, payload: TLBUpdate, service: TerminalBenefitService = Depends(tlb_service)):
    fields = payload.model_dump(exclude_none=True)
    user_id = fields.pop("user_id", None)
    return service.update(record_id, user_id=user_id, **fields)


@router.post("/{record_id}/transition", response_model=TLBResponse)
def transition_tlb(
    record_id: int,
    payload: TLBTransitionRequest,
    service: TerminalBenefitService = Depends(tlb_service)
):
    return service.transition(
        record_id,
        to_transition(payload.transition),
        user_id=payload.user_id,
        notes=payload.notes
    )


@router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_tlb(record_id: int, user_id: Optional[int] = None, service: TerminalBenefitService = Depends(tlb_service)):
    service.delete(record_id, user_id=user_id)
