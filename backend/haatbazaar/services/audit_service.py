# haatbazaar/services/audit_service.py
# Writes an audit trail of marketplace mutations to MongoDB

from typing import Any, Dict, Optional
from motor.motor_asyncio import AsyncIOMotorCollection

from haatbazaar.core.config import settings
from haatbazaar.core.logging_setup import logger, trace_id_var
from haatbazaar.db.mongo_client import get_database
from haatbazaar.db.schemas.common_schemas import utcnow


class AuditService:
    """Logs order, payment, negotiation and moderation actions to a dedicated collection."""

    def __init__(self):
        self._collection: Optional[AsyncIOMotorCollection] = None
        self.enabled = settings.AUDIT_LOG_ENABLED
        self.collection_name = settings.AUDIT_LOG_MONGO_COLLECTION

    def _get_collection(self) -> Optional[AsyncIOMotorCollection]:
        if not self.enabled:
            return None
        if self._collection is None:
            try:
                self._collection = get_database()[self.collection_name]
            except RuntimeError as e:
                # Not connected yet (worker start-up, tests); retry on the next event
                logger.warning(f"AuditService has no database: {e}")
                return None
        return self._collection

    async def log_event(
        self,
        actor_id: str,
        action: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        success: bool = True,
        details: Optional[Dict[str, Any]] = None,
        trace_id: Optional[str] = None,
    ):
        """Writes an audit entry. Failures are logged and never raised to the caller."""
        collection = self._get_collection()
        if collection is None:
            return

        log_entry = {
            "timestamp": utcnow(),
            "actor_id": actor_id,
            "action": action,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "success": success,
            "details": details or {},
            "trace_id": trace_id or trace_id_var.get() or "N/A",
        }
        log = logger.bind(audit_action=action, audit_actor=actor_id, audit_success=success)
        try:
            await collection.insert_one(log_entry)
            log.debug("Audit event logged.")
        except Exception:
            log.exception("Failed to write audit log to MongoDB.")

    def reset(self):
        self._collection = None


audit_service = AuditService()
