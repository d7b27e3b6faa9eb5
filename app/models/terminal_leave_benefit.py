from sqlalchemy import Column, Integer, String, Float, Date, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
import enum

class TLBStatus(str, enum.Enum):
    COMPUTED = "Computed"
    APPROVED = "Approved"
    PAID = "Paid"
    CANCELLED = "Cancelled"

class TerminalLeaveBenefit(Base):
    __tablename__ = "terminal_leave_benefits"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id", ondelete="CASCADE"), unique=True, nullable=False)
    total_leave_credits = Column(Float, nullable=False)
    highest_monthly_salary = Column(Float, nullable=False)
    constant_factor = Column(Float, default=1.0, nullable=False)
    computed_amount = Column(Float, nullable=False)
    claim_date = Column(Date, nullable=False)
    separation_date = Column(Date, nullable=False)
    status = Column(String(20), default=TLBStatus.COMPUTED.value, nullable=False, index=True)
    processed_by = Column(Integer, nullable=True)
    approved_by = Column(Integer, nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    paid_by = Column(Integer, nullable=True)
    payment_date = Column(DateTime(timezone=True), nullable=True)
    check_number = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    employee = relationship("Employee")
