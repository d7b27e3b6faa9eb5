from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.services.leave_reports import LeaveReportService

router = APIRouter(prefix="/leave/reports", tags=["Leave Reports"])


@router.get("/summary")
def summary_report(
    year: Optional[int] = None,
    employee_id: Optional[int] = None,
    db: Session = Depends(get_db)
) -> List[Dict[str, Any]]:
    return LeaveReportService(db).summary(year or date.today().year, employee_id)


@router.get("/usage")
def usage_report(year: Optional[int] = None, db: Session = Depends(get_db)) -> Dict[str, Any]:
    return LeaveReportService(db).usage(year or date.today().year)


@router.get("/balances")
def balance_report(
    year: Optional[int] = None,
    employee_id: Optional[int] = None,
    db: Session = Depends(get_db)
) -> List[Dict[str, Any]]:
    return LeaveReportService(db).balances(year or date.today().year, employee_id)


@router.get("/compliance")
def compliance_report(year: Optional[int] = None, db: Session = Depends(get_db)) -> Dict[str, Any]:
    return LeaveReportService(db).compliance(year or date.today().year)


@router.get("/pending")
def pending_dashboard(db: Session = Depends(get_db)) -> Dict[str, Any]:
    return LeaveReportService(db).pending_dashboard()


@router.get("/statistics")
def leave_statistics(
    year: Optional[int] = None,
    employee_id: Optional[int] = None,
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    return LeaveReportService(db).statistics(year, employee_id)


@router.get("/forecasting")
def forecasting_report(year: Optional[int] = None, db: Session = Depends(get_db)) -> Dict[str, Any]:
    """Projects `year` from the approved usage of the year before."""
    return LeaveReportService(db).forecasting(year or date.today().year)
