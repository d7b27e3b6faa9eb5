from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey
from sqlalchemy.sql import func
from app.database import Base

class MonetizationTransaction(Base):
    """
    Append-only record of a monetization.
    Rows are never updated or deleted; `reference` makes replays idempotent.
    """
    __tablename__ = "leave_monetizations"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False)
    year = Column(Integer, nullable=False)
    days_monetized = Column(Float, nullable=False)
    daily_rate = Column(Float, nullable=False, default=0.0)
    amount = Column(Float, nullable=False, default=0.0)
    balance_before = Column(Float, nullable=False)
    balance_after = Column(Float, nullable=False)
    processed_by = Column(Integer, nullable=True)
    reference = Column(String(64), unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
