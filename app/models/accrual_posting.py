from sqlalchemy import Column, Integer, Float, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from app.database import Base

class AccrualPosting(Base):
    """
    One row per credited (employee, year, month). The unique key makes a
    second credit of the same month fail at the database.
    """
    __tablename__ = "leave_accrual_postings"
    __table_args__ = (
        UniqueConstraint("employee_id", "year", "month", name="uq_accrual_posting_month"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    vl_credited = Column(Float, default=0.0, nullable=False)
    sl_credited = Column(Float, default=0.0, nullable=False)
    posted_at = Column(DateTime(timezone=True), server_default=func.now())
