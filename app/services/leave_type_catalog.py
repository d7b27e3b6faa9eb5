from typing import List, Optional

from app.core.exceptions import NotFoundError, StateConflictError, ValidationError
from app.models.leave_application import LeaveApplication
from app.models.leave_balance import LeaveBalance
from app.models.leave_type import LeaveType
from app.services.base import BaseService

# Seeded on first start; mirrors the civil-service leave catalogue
DEFAULT_LEAVE_TYPES = [
    {"code": "VL", "name": "Vacation Leave", "max_days_per_year": 15, "is_monetizable": True},
    {"code": "SL", "name": "Sick Leave", "max_days_per_year": 15, "is_monetizable": True,
     "requires_medical_certificate": True},
    {"code": "FL", "name": "Forced Leave", "max_days_per_year": 5},
    {"code": "SPL", "name": "Special Privilege Leave", "max_days_per_year": 3},
    {"code": "ML", "name": "Maternity Leave", "max_days_per_year": 105},
    {"code": "PL", "name": "Paternity Leave", "max_days_per_year": 7},
]

NULLABLE_FIELDS = {"description", "max_days_per_year"}


class LeaveTypeCatalog(BaseService):

    def get(self, leave_type_id: int) -> LeaveType:
        leave_type = self.db.get(LeaveType, leave_type_id)
        if leave_type is None:
            raise NotFoundError("Leave type not found")
        return leave_type

    def get_by_code(self, code: str) -> Optional[LeaveType]:
        return self.db.query(LeaveType).filter(LeaveType.code == code).first()

    def list(self, is_monetizable: Optional[bool] = None, search: Optional[str] = None) -> List[LeaveType]:
        query = self.db.query(LeaveType)
        if is_monetizable is not None:
            query = query.filter(LeaveType.is_monetizable == is_monetizable)
        if search:
            term = f"%{search}%"
            query = query.filter(LeaveType.name.ilike(term) | LeaveType.code.ilike(term))
        return query.order_by(LeaveType.name).all()

    def create(self, **fields) -> LeaveType:
        self._validate(fields)
        self._check_duplicate(fields["name"], fields["code"])
        leave_type = LeaveType(**fields)
        self.db.add(leave_type)
        self.commit()
        self.db.refresh(leave_type)
        self.log_info(f"Leave type {leave_type.code} created")
        return leave_type

    def update(self, leave_type_id: int, **fields) -> LeaveType:
        """
        Apply the given fields as sent. An explicit None clears
        `description` or `max_days_per_year` (unbounded type).
        """
        leave_type = self.get(leave_type_id)
        not_nullable = sorted(k for k, v in fields.items() if v is None and k not in NULLABLE_FIELDS)
        if not_nullable:
            raise ValidationError([f"Leave type {key} cannot be empty" for key in not_nullable])
        merged = {
            "code": leave_type.code,
            "name": leave_type.name,
            "max_days_per_year": leave_type.max_days_per_year,
            **fields,
        }
        self._validate(merged)
        self._check_duplicate(merged["name"], merged["code"], exclude_id=leave_type_id)
        for key, value in fields.items():
            setattr(leave_type, key, value)
        self.commit()
        self.db.refresh(leave_type)
        return leave_type

    def delete(self, leave_type_id: int):
        leave_type = self.get(leave_type_id)
        if self.is_referenced(leave_type_id):
            raise StateConflictError(
                "Cannot delete leave type that is being used in employee balances or applications"
            )
        self.db.delete(leave_type)
        self.commit()
        self.log_info(f"Leave type {leave_type.code} deleted")

    def is_referenced(self, leave_type_id: int) -> bool:
        in_balances = self.db.query(LeaveBalance.id).filter(
            LeaveBalance.leave_type_id == leave_type_id
        ).first() is not None
        in_applications = self.db.query(LeaveApplication.id).filter(
            LeaveApplication.leave_type_id == leave_type_id
        ).first() is not None
        return in_balances or in_applications

    def seed_defaults(self) -> int:
        created = 0
        for definition in DEFAULT_LEAVE_TYPES:
            if self.get_by_code(definition["code"]) is None:
                self.db.add(LeaveType(**definition))
                created += 1
        if created:
            self.commit()
        return created

    @staticmethod
    def _validate(fields: dict):
        errors = []
        name = (fields.get("name") or "").strip()
        code = (fields.get("code") or "").strip()
        if not name:
            errors.append("Leave type name is required")
        if not code:
            errors.append("Leave type code is required")
        if len(code) > 10:
            errors.append("Leave type code must be 10 characters or less")
        if len(name) > 50:
            errors.append("Leave type name must be 50 characters or less")
        max_days = fields.get("max_days_per_year")
        if max_days is not None and max_days < 0:
            errors.append("Maximum days per year cannot be negative")
        if errors:
            raise ValidationError(errors)

    def _check_duplicate(self, name: str, code: str, exclude_id: Optional[int] = None):
        query = self.db.query(LeaveType).filter((LeaveType.name == name) | (LeaveType.code == code))
        if exclude_id is not None:
            query = query.filter(LeaveType.id != exclude_id)
        duplicate = query.first()
        if duplicate:
            field = "name" if duplicate.name == name else "code"
            raise ValidationError([f"Leave type {field} '{getattr(duplicate, field)}' already exists"])
