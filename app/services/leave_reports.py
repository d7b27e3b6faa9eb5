"""Read-only aggregate views over leave applications and balances."""
import math
from collections import defaultdict
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func

from app.models.employee import Employee, EmploymentStatus
from app.models.leave_application import ACTIVE_LEAVE_STATUSES, LeaveApplication, LeaveStatus
from app.models.leave_balance import LeaveBalance
from app.models.leave_type import LeaveType
from app.services.balance_store import EPSILON, round_days
from app.services.base import BaseService
from app.services.eligibility import SICK_LEAVE_CERTIFICATE_DAYS

URGENT_PENDING_DAYS = 3
LOW_BALANCE_THRESHOLD = 2
HIGH_BALANCE_RATIO = 0.8
FORECAST_GROWTH = 1.1


def _year_bounds(year: int):
    return date(year, 1, 1), date(year, 12, 31)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5 + EPSILON))


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class LeaveReportService(BaseService):

    def summary(self, year: int, employee_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """Per employee and leave type: application totals by status next to the balance row."""
        start, end = _year_bounds(year)
        query = self.db.query(LeaveApplication).join(Employee).filter(
            Employee.employment_status == EmploymentStatus.ACTIVE.value,
            LeaveApplication.start_date >= start,
            LeaveApplication.start_date <= end
        )
        if employee_id:
            query = query.filter(LeaveApplication.employee_id == employee_id)

        rows: Dict[tuple, Dict[str, Any]] = {}
        for application in query.all():
            key = (application.employee_id, application.leave_type_id)
            row = rows.get(key)
            if row is None:
                row = rows[key] = {
                    "employee_id": application.employee_id,
                    "employee_number": application.employee.employee_number,
                    "employee_name": application.employee.full_name,
                    "leave_type": application.leave_type.name,
                    "leave_type_code": application.leave_type.code,
                    "total_applications": 0,
                    "approved_days": 0.0,
                    "pending_days": 0.0,
                    "rejected_days": 0.0,
                }
            row["total_applications"] += 1
            bucket = {
                LeaveStatus.APPROVED.value: "approved_days",
                LeaveStatus.PENDING.value: "pending_days",
                LeaveStatus.REJECTED.value: "rejected_days",
            }.get(application.status)
            if bucket:
                row[bucket] = round_days(row[bucket] + application.days_requested)

        balances = self.db.query(LeaveBalance).filter(LeaveBalance.year == year)
        if employee_id:
            balances = balances.filter(LeaveBalance.employee_id == employee_id)
        for balance in balances.all():
            row = rows.get((balance.employee_id, balance.leave_type_id))
            if row is not None:
                row.update({
                    "earned_days": balance.earned_days,
                    "used_days": balance.used_days,
                    "monetized_days": balance.monetized_days,
                    "carried_forward": balance.carried_forward,
                    "current_balance": balance.current_balance,
                })
        return sorted(rows.values(), key=lambda r: (r["employee_name"], r["leave_type"]))

    def usage(self, year: int) -> Dict[str, Any]:
        """Approved usage by month and leave type, plus the heaviest users."""
        start, end = _year_bounds(year)
        approved = self.db.query(LeaveApplication).filter(
            LeaveApplication.status == LeaveStatus.APPROVED.value,
            LeaveApplication.start_date >= start,
            LeaveApplication.start_date <= end
        ).all()

        monthly = defaultdict(lambda: {"applications": 0, "total_days": 0.0})
        per_employee = defaultdict(lambda: {"applications": 0, "total_days": 0.0})
        for application in approved:
            bucket = monthly[(application.start_date.month, application.leave_type.code)]
            bucket["applications"] += 1
            bucket["total_days"] += application.days_requested
            user = per_employee[application.employee_id]
            user["applications"] += 1
            user["total_days"] += application.days_requested

        monthly_trends = [
            {
                "month": month,
                "leave_type": code,
                "applications": data["applications"],
                "total_days": round_days(data["total_days"]),
                "avg_days_per_application": round_days(data["total_days"] / data["applications"]),
            }
            for (month, code), data in sorted(monthly.items())
        ]
        top = sorted(per_employee.items(), key=lambda item: item[1]["total_days"], reverse=True)[:20]
        employees = {
            e.id: e for e in self.db.query(Employee).filter(Employee.id.in_([i for i, _ in top])).all()
        } if top else {}
        top_users = [
            {
                "employee_id": employee_id,
                "employee_number": employees[employee_id].employee_number,
                "employee_name": employees[employee_id].full_name,
                "total_applications": data["applications"],
                "total_days_used": round_days(data["total_days"]),
            }
            for employee_id, data in top
        ]
        return {"year": year, "monthly_trends": monthly_trends, "top_users": top_users}

    def balances(self, year: int, employee_id: Optional[int] = None) -> List[Dict[str, Any]]:
        query = self.db.query(LeaveBalance).join(Employee).join(LeaveType).filter(
            LeaveBalance.year == year,
            Employee.employment_status == EmploymentStatus.ACTIVE.value
        )
        if employee_id:
            query = query.filter(LeaveBalance.employee_id == employee_id)

        report = []
        for balance in query.order_by(Employee.last_name, Employee.first_name, LeaveType.name).all():
            earned = balance.earned_days or 0.0
            if balance.current_balance < LOW_BALANCE_THRESHOLD:
                status = "Low"
            elif balance.current_balance > earned * HIGH_BALANCE_RATIO:
                status = "High"
            else:
                status = "Normal"
            report.append({
                "employee_id": balance.employee_id,
                "employee_number": balance.employee.employee_number,
                "employee_name": balance.employee.full_name,
                "leave_type": balance.leave_type.name,
                "leave_type_code": balance.leave_type.code,
                "earned_days": earned,
                "used_days": balance.used_days,
                "monetized_days": balance.monetized_days,
                "carried_forward": balance.carried_forward,
                "current_balance": balance.current_balance,
                "utilization_percentage": round(balance.used_days / earned * 100, 2) if earned else None,
                "balance_status": status,
            })
        return report

    def compliance(self, year: int) -> Dict[str, Any]:
        """
        Applications that need a medical certificate, and balance rows that
        break the ledger invariants. The second list should always be empty;
        anything in it points at a write that bypassed the balance store.
        """
        start, end = _year_bounds(year)
        certificate = self.db.query(LeaveApplication).join(LeaveType).filter(
            LeaveApplication.start_date >= start,
            LeaveApplication.start_date <= end,
            LeaveType.requires_medical_certificate.is_(True),
            LeaveApplication.days_requested >= SICK_LEAVE_CERTIFICATE_DAYS,
            LeaveApplication.status.in_(ACTIVE_LEAVE_STATUSES)
        ).order_by(LeaveApplication.start_date.desc()).all()

        anomalies = []
        for balance in self.db.query(LeaveBalance).filter(LeaveBalance.year == year).all():
            entitlement = balance.entitlement
            derived = round_days(entitlement - balance.used_days - balance.monetized_days)
            if balance.current_balance < -EPSILON:
                anomaly = "Negative Balance"
            elif balance.used_days > entitlement + EPSILON:
                anomaly = "Overuse"
            elif abs(derived - balance.current_balance) > EPSILON:
                anomaly = "Balance Mismatch"
            else:
                continue
            anomalies.append({
                "employee_id": balance.employee_id,
                "leave_type_code": balance.leave_type.code,
                "earned_days": balance.earned_days,
                "used_days": balance.used_days,
                "carried_forward": balance.carried_forward,
                "current_balance": balance.current_balance,
                "anomaly_type": anomaly,
            })

        return {
            "year": year,
            "medical_certificate_compliance": [
                {
                    "application_id": a.id,
                    "application_number": a.application_number,
                    "employee_id": a.employee_id,
                    "employee_name": a.employee.full_name,
                    "start_date": a.start_date,
                    "days_requested": a.days_requested,
                    "status": a.status,
                    "compliance_issue": "Missing Medical Certificate",
                }
                for a in certificate
            ],
            "balance_anomalies": anomalies,
        }

    def pending_dashboard(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        pending = self.db.query(LeaveApplication).filter(
            LeaveApplication.status == LeaveStatus.PENDING.value
        ).order_by(LeaveApplication.applied_at).all()

        ages = {a.id: (now - _aware(a.applied_at)).days if a.applied_at else 0 for a in pending}
        by_type = self.db.query(
            LeaveType.name,
            func.count(LeaveApplication.id),
            func.coalesce(func.sum(LeaveApplication.days_requested), 0.0)
        ).join(LeaveApplication, LeaveApplication.leave_type_id == LeaveType.id).filter(
            LeaveApplication.status == LeaveStatus.PENDING.value
        ).group_by(LeaveType.name).order_by(func.count(LeaveApplication.id).desc()).all()

        return {
            "pending_summary": {
                "total_pending": len(pending),
                "total_days_pending": round_days(sum(a.days_requested for a in pending)),
                "avg_pending_days": round(sum(ages.values()) / len(ages), 2) if ages else 0.0,
            },
            "pending_by_type": [
                {"leave_type": name, "pending_count": count, "pending_days": round_days(days)}
                for name, count, days in by_type
            ],
            "urgent_pending": [
                {
                    "id": a.id,
                    "application_number": a.application_number,
                    "employee_id": a.employee_id,
                    "employee_name": a.employee.full_name,
                    "leave_type": a.leave_type.name,
                    "start_date": a.start_date,
                    "end_date": a.end_date,
                    "days_requested": a.days_requested,
                    "days_pending": ages[a.id],
                }
                for a in pending if ages[a.id] > URGENT_PENDING_DAYS
            ],
        }

    def statistics(self, year: Optional[int] = None, employee_id: Optional[int] = None) -> Dict[str, Any]:
        """Application counts by status and by leave type."""
        query = self.db.query(LeaveApplication)
        if year:
            start, end = _year_bounds(year)
            query = query.filter(LeaveApplication.start_date >= start, LeaveApplication.start_date <= end)
        if employee_id:
            query = query.filter(LeaveApplication.employee_id == employee_id)
        applications = query.all()

        counts = {status.value.lower(): 0 for status in LeaveStatus}
        by_type = defaultdict(int)
        for application in applications:
            counts[application.status.lower()] += 1
            by_type[application.leave_type.name] += 1
        return {
            "total": len(applications),
            **counts,
            "by_type": [{"leave_type": name, "count": count} for name, count in sorted(by_type.items())],
        }

    def leave_type_statistics(self) -> Dict[str, Any]:
        usage = self.db.query(
            LeaveType.name,
            func.count(LeaveApplication.id),
            func.coalesce(func.sum(
                case((LeaveApplication.status == LeaveStatus.APPROVED.value, LeaveApplication.days_requested), else_=0.0)
            ), 0.0)
        ).outerjoin(LeaveApplication, LeaveApplication.leave_type_id == LeaveType.id).group_by(
            LeaveType.id, LeaveType.name
        ).order_by(func.count(LeaveApplication.id).desc(), LeaveType.name).all()

        types = self.db.query(LeaveType).all()
        return {
            "total": len(types),
            "monetizable": sum(1 for t in types if t.is_monetizable),
            "requires_certificate": sum(1 for t in types if t.requires_medical_certificate),
            "usage_statistics": [
                {"leave_type": name, "applications_count": count, "approved_days": round_days(days)}
                for name, count, days in usage
            ],
        }

    def forecasting(self, year: int) -> Dict[str, Any]:
        """
        Next-year projection per leave type: approved usage of the previous
        year grown by FORECAST_GROWTH.
        """
        start, end = _year_bounds(year - 1)
        rows = self.db.query(
            LeaveType.name,
            func.count(LeaveApplication.id),
            func.coalesce(func.sum(LeaveApplication.days_requested), 0.0)
        ).join(LeaveApplication, LeaveApplication.leave_type_id == LeaveType.id).filter(
            LeaveApplication.status == LeaveStatus.APPROVED.value,
            LeaveApplication.start_date >= start,
            LeaveApplication.start_date <= end
        ).group_by(LeaveType.id, LeaveType.name).all()

        forecast = [
            {
                "leave_type": name,
                "historical_applications": count,
                "historical_days": round_days(days),
                "avg_days_per_application": round_days(days / count) if count else 0.0,
                "projected_applications": _round_half_up(count * FORECAST_GROWTH),
                "projected_days": _round_half_up(days * FORECAST_GROWTH),
            }
            for name, count, days in rows
        ]
        forecast.sort(key=lambda row: row["historical_days"], reverse=True)
        return {"year": year, "based_on_year": year - 1, "forecast": forecast}
