from datetime import timedelta
from typing import Any, List, Optional

from app.services.base import BaseService
from app.models.audit_log import AuditLog, utcnow


def _sanitize(obj):
    """Make nested pydantic models, dates and dicts JSON-column friendly."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if isinstance(obj, dict):
        return {k: _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize(i) for i in obj]
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    return obj


class AuditService(BaseService):
    def log_action(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[int],
        user_id: Optional[int] = None,
        details: Optional[dict] = None,
        before_state: Optional[dict] = None,
        after_state: Optional[dict] = None
    ) -> AuditLog:
        """
        Create an audit log entry. Strictly append-only.

        The entry is added to the caller's session and flushed, not committed,
        so it lands in the same transaction as the action it describes.
        """
        db_log = AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            details=_sanitize(details or {}),
            before_state=_sanitize(before_state),
            after_state=_sanitize(after_state)
        )
        self.db.add(db_log)
        self.db.flush()
        return db_log

    def find_recent(
        self,
        action: str,
        entity_type: str,
        entity_id: int,
        within_days: int,
        **detail_match: Any
    ) -> List[AuditLog]:
        """
        Entries for an entity newer than `within_days` whose details contain
        every key/value in `detail_match`.
        """
        cutoff = utcnow() - timedelta(days=within_days)
        rows = self.db.query(AuditLog).filter(
            AuditLog.action == action,
            AuditLog.entity_type == entity_type,
            AuditLog.entity_id == entity_id,
            AuditLog.timestamp >= cutoff
        ).all()
        return [
            row for row in rows
            if all((row.details or {}).get(k) == v for k, v in detail_match.items())
        ]

    # Static wrapper for call sites that only hold a session
    @staticmethod
    def log(db, *args, **kwargs):
        service = AuditService(db)
        return service.log_action(*args, **kwargs)
