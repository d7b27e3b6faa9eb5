import logging
from app.core.config import settings
from app.database import SessionLocal
from app.services.leave_type_catalog import LeaveTypeCatalog
from app.services.settings_service import SettingsService

logger = logging.getLogger(__name__)

def init_system_data(session_factory=SessionLocal):
    """
    Seeds the leave type catalogue and the ledger settings rows.
    Existing rows are never overwritten, so this is safe on every start.
    """
    db = session_factory()
    try:
        if settings.seed_leave_types:
            created = LeaveTypeCatalog(db).seed_defaults()
            if created:
                logger.info(f"✓ Seeded {created} default leave types")
            else:
                logger.info("Leave type catalogue already populated")

        SettingsService(db).seed_defaults()
        logger.info("✓ Ledger settings check complete")
    except Exception as e:
        db.rollback()
        logger.error(f"Error during system initialization check: {str(e)}", exc_info=True)
    finally:
        db.close()
