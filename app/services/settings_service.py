"""
Ledger configuration.

Accrual rates, the carry-forward cap and the TLB factor are read once into
an immutable LedgerSettings object which is then handed to the processors.
Processors never query the settings table themselves.
"""
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from app.core.config import settings as app_settings
from app.core.exceptions import ValidationError
from app.models.system_setting import SystemSetting
from app.services.base import BaseService

TLB_FACTOR_MIN = 0.1
TLB_FACTOR_MAX = 2.0


class LedgerSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    monthly_vl_accrual: float = Field(default=app_settings.ledger.monthly_vl_accrual, ge=0)
    monthly_sl_accrual: float = Field(default=app_settings.ledger.monthly_sl_accrual, ge=0)
    max_carry_forward_days: float = Field(default=app_settings.ledger.max_carry_forward_days, ge=0)
    tlb_constant_factor: float = Field(
        default=app_settings.ledger.tlb_constant_factor, ge=TLB_FACTOR_MIN, le=TLB_FACTOR_MAX
    )
    working_days_per_month: float = Field(default=app_settings.ledger.working_days_per_month, gt=0)
    default_accrual_cap: float = Field(default=app_settings.ledger.default_accrual_cap, gt=0)
    accrual_dedupe_window_days: int = Field(default=app_settings.ledger.accrual_dedupe_window_days, ge=0)

    def monthly_rate_for(self, code: str) -> Optional[float]:
        return {"VL": self.monthly_vl_accrual, "SL": self.monthly_sl_accrual}.get(code)


# Keys persisted in system_settings, with the description seeded alongside them
SETTING_DESCRIPTIONS: Dict[str, str] = {
    "monthly_vl_accrual": "Monthly VL accrual rate",
    "monthly_sl_accrual": "Monthly SL accrual rate",
    "max_carry_forward_days": "Maximum VL/SL days carried into the next year",
    "tlb_constant_factor": "Terminal Leave Benefits calculation factor",
    "working_days_per_month": "Working days used to derive the daily rate",
}


class SettingsService(BaseService):
    def load(self) -> LedgerSettings:
        """Build LedgerSettings from the settings table, falling back to defaults."""
        rows = self.db.query(SystemSetting).filter(
            SystemSetting.setting_key.in_(list(LedgerSettings.model_fields.keys()))
        ).all()
        overrides = {row.setting_key: row.setting_value for row in rows}
        return LedgerSettings(**overrides)

    def update(self, key: str, value: float) -> LedgerSettings:
        if key not in LedgerSettings.model_fields:
            raise ValidationError([f"Unknown setting '{key}'"])
        # Validate the whole object before persisting a single value
        candidate = self.load().model_dump()
        candidate[key] = value
        try:
            LedgerSettings(**candidate)
        except ValueError as exc:
            raise ValidationError([f"Invalid value for {key}: {exc}"])

        row = self.db.query(SystemSetting).filter(SystemSetting.setting_key == key).first()
        if row is None:
            row = SystemSetting(
                setting_key=key,
                setting_value=value,
                description=SETTING_DESCRIPTIONS.get(key)
            )
            self.db.add(row)
        else:
            row.setting_value = value
        self.commit()
        self.log_info(f"Ledger setting {key} set to {value}")
        return self.load()

    def seed_defaults(self):
        """Insert missing settings rows with their default values."""
        defaults = LedgerSettings()
        existing = {
            key for (key,) in self.db.query(SystemSetting.setting_key).all()
        }
        for key, description in SETTING_DESCRIPTIONS.items():
            if key not in existing:
                self.db.add(SystemSetting(
                    setting_key=key,
                    setting_value=getattr(defaults, key),
                    description=description
                ))
        self.commit()


def get_ledger_settings(db: Session) -> LedgerSettings:
    return SettingsService(db).load()
