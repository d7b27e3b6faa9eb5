import os
import logging
from pydantic import BaseModel, Field
from typing import List
from dotenv import load_dotenv

load_dotenv()

class LedgerDefaults(BaseModel):
    """
    Fallback values for ledger settings.
    Values stored in the system_settings table take precedence.
    """
    monthly_vl_accrual: float = float(os.getenv("MONTHLY_VL_ACCRUAL", "1.25"))
    monthly_sl_accrual: float = float(os.getenv("MONTHLY_SL_ACCRUAL", "1.25"))
    max_carry_forward_days: float = float(os.getenv("MAX_CARRY_FORWARD_DAYS", "5"))
    tlb_constant_factor: float = float(os.getenv("TLB_CONSTANT_FACTOR", "1.0"))
    working_days_per_month: float = 22.0
    default_accrual_cap: float = 15.0
    accrual_dedupe_window_days: int = 7

class Config(BaseModel):
    app_name: str = "Leave Ledger Engine"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = "/api"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./leave_ledger.db")

    # Ledger
    ledger: LedgerDefaults = LedgerDefaults()
    seed_leave_types: bool = os.getenv("SEED_LEAVE_TYPES", "true").lower() == "true"

    # Enterprise Architecture
    version: str = "1.0.0"
    build_id: str = os.getenv("BUILD_ID", "local")
    request_id_header: str = "X-Request-ID"

    # CORS: comma-separated origins loaded from env.
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            o.strip()
            for o in os.getenv(
                "CORS_ORIGINS",
                "http://localhost:3000,http://127.0.0.1:3000",
            ).split(",")
            if o.strip()
        ]
    )

    # Scalability & Performance
    rate_limit_per_minute: int = int(os.getenv("RATE_LIMIT_PER_MINUTE", "60"))
    batch_retry_attempts: int = int(os.getenv("BATCH_RETRY_ATTEMPTS", "3"))

settings = Config()

# --- Startup Validation for Production ---
_logger = logging.getLogger(__name__)
if settings.environment not in ("development", "testing"):
    if settings.database_url.startswith("sqlite"):
        _logger.warning("⚠ Using SQLite outside development; row locks are not enforced.")
