"""
Employee directory rows consumed by the ledger.

Only the fields the engine reads are modelled here; demographics live
with the employee-records service.
"""
from sqlalchemy import Column, Integer, String, Float, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from app.database import Base


class EmploymentStatus(str, enum.Enum):
    ACTIVE = "Active"
    SEPARATED = "Separated"
    RETIRED = "Retired"
    SUSPENDED = "Suspended"


class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    employee_number = Column(String(50), unique=True, index=True, nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    appointment_date = Column(Date, nullable=True)
    employment_status = Column(String(20), default=EmploymentStatus.ACTIVE.value, nullable=False)
    current_monthly_salary = Column(Float, nullable=True)
    separation_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    service_records = relationship("ServiceRecord", back_populates="employee", cascade="all, delete-orphan")
    leave_balances = relationship("LeaveBalance", back_populates="employee", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Employee {self.employee_number}>"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_active(self) -> bool:
        return self.employment_status == EmploymentStatus.ACTIVE.value


class ServiceRecord(Base):
    """Historical position/salary entries; the highest salary feeds terminal leave pay."""
    __tablename__ = "service_records"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(String(150), nullable=True)
    salary = Column(Float, nullable=True)
    date_from = Column(Date, nullable=True)
    date_to = Column(Date, nullable=True)

    employee = relationship("Employee", back_populates="service_records")
