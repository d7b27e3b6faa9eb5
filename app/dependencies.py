"""
Shared FastAPI dependencies.

Ledger settings are read once per request and handed to the processors,
so a request sees one consistent set of rates and caps.
"""
from fastapi import Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.services.accrual import AccrualProcessor, MonthlyAccrualJob
from app.services.carry_forward import CarryForwardProcessor
from app.services.leave_lifecycle import LeaveLifecycleService
from app.services.monetization import MonetizationProcessor
from app.services.settings_service import LedgerSettings, get_ledger_settings
from app.services.terminal_benefits import TerminalBenefitCalculator, TerminalBenefitService


def ledger_settings(db: Session = Depends(get_db)) -> LedgerSettings:
    return get_ledger_settings(db)


def lifecycle_service(db: Session = Depends(get_db)) -> LeaveLifecycleService:
    return LeaveLifecycleService(db)


def accrual_processor(
    db: Session = Depends(get_db),
    settings: LedgerSettings = Depends(ledger_settings)
) -> AccrualProcessor:
    return AccrualProcessor(db, settings)


def accrual_job(
    db: Session = Depends(get_db),
    settings: LedgerSettings = Depends(ledger_settings)
) -> MonthlyAccrualJob:
    return MonthlyAccrualJob(db, settings)


def monetization_processor(
    db: Session = Depends(get_db),
    settings: LedgerSettings = Depends(ledger_settings)
) -> MonetizationProcessor:
    return MonetizationProcessor(db, settings)


def carry_forward_processor(
    db: Session = Depends(get_db),
    settings: LedgerSettings = Depends(ledger_settings)
) -> CarryForwardProcessor:
    return CarryForwardProcessor(db, settings)


def tlb_calculator(
    db: Session = Depends(get_db),
    settings: LedgerSettings = Depends(ledger_settings)
) -> TerminalBenefitCalculator:
    return TerminalBenefitCalculator(db, settings)


def tlb_service(
    db: Session = Depends(get_db),
    settings: LedgerSettings = Depends(ledger_settings)
) -> TerminalBenefitService:
    return TerminalBenefitService(db, settings)


__all__ = [
    "ledger_settings",
    "lifecycle_service",
    "accrual_processor",
    "accrual_job",
    "monetization_processor",
    "carry_forward_processor",
    "tlb_calculator",
    "tlb_service",
]
