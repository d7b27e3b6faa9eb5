from sqlalchemy import Column, Integer, String, Float, Boolean, Text, DateTime
from sqlalchemy.sql import func
from app.database import Base

# Leave type codes with rules attached to them
VACATION_LEAVE = "VL"
SICK_LEAVE = "SL"
FORCED_LEAVE = "FL"
MATERNITY_LEAVE = "ML"
PATERNITY_LEAVE = "PL"
SPECIAL_PRIVILEGE_LEAVE = "SPL"

# Only these accrue monthly and roll over at year end
ACCRUING_LEAVE_CODES = (VACATION_LEAVE, SICK_LEAVE)

class LeaveType(Base):
    __tablename__ = "leave_types"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(10), unique=True, index=True, nullable=False)
    name = Column(String(50), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    max_days_per_year = Column(Float, nullable=True) # None = unbounded
    is_monetizable = Column(Boolean, default=False, nullable=False)
    requires_medical_certificate = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<LeaveType {self.code}>"
