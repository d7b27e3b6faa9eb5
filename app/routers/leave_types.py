from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.schemas.leave import LeaveTypeCreate, LeaveTypeResponse, LeaveTypeUpdate
from app.services.leave_reports import LeaveReportService
from app.services.leave_type_catalog import LeaveTypeCatalog

router = APIRouter(prefix="/leave/types", tags=["Leave Types"])


@router.get("", response_model=List[LeaveTypeResponse])
def list_leave_types(
    is_monetizable: Optional[bool] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db)
):
    return LeaveTypeCatalog(db).list(is_monetizable=is_monetizable, search=search)


@router.get("/statistics")
def leave_type_statistics(db: Session = Depends(get_db)) -> Dict[str, Any]:
    return LeaveReportService(db).leave_type_statistics()


@router.get("/{leave_type_id}", response_model=LeaveTypeResponse)
def get_leave_type(leave_type_id: int, db: Session = Depends(get_db)):
    return LeaveTypeCatalog(db).get(leave_type_id)


@router.post("", response_model=LeaveTypeResponse, status_code=status.HTTP_201_CREATED)
def create_leave_type(payload: LeaveTypeCreate, db: Session = Depends(get_db)):
    return LeaveTypeCatalog(db).create(**payload.model_dump())


@router.put("/{leave_type_id}", response_model=LeaveTypeResponse)
def update_leave_type(leave_type_id: int, payload: LeaveTypeUpdate, db: Session = Depends(get_db)):
    return LeaveTypeCatalog(db).update(leave_type_id, **payload.model_dump(exclude_unset=True))


@router.delete("/{leave_type_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_leave_type(leave_type_id: int, db: Session = Depends(get_db)):
    """Fails with 409 while any balance or application still references the type."""
    LeaveTypeCatalog(db).delete(leave_type_id)
