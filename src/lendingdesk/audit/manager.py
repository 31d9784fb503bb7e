"""Append-only audit log."""

import logging
from typing import Any, Optional, Union

from sqlalchemy import select

from ..db.models import from_iso
from ..db.sqlite import Database, get_db
from .models import AuditEntry
from .schemas import AuditAction, AuditEntryResponse

logger = logging.getLogger(__name__)


class AuditLog:
    """Writes and reads the administrative audit trail."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_db()

    def append(
        self,
        actor_id: str,
        action: Union[AuditAction, str],
        metadata: Optional[dict[str, Any]] = None,
    ) -> str:
        """Append an entry in its own transaction.

        Args:
            actor_id: Administrator performing the action
            action: Action name
            metadata: Structured details (JSON serializable)

        Returns:
            ID of the new entry
        """
        action_name = action.value if isinstance(action, AuditAction) else action

        def _append(session) -> str:
            entry = AuditEntry(actor_id=actor_id, action=action_name)
            entry.set_metadata(metadata)
            session.add(entry)
            session.flush()
            return entry.id

        entry_id = self.db.run_transaction(_append)
        logger.info("Audit %s by %s (%s)", action_name, actor_id, entry_id)
        return entry_id

    def list_entries(
        self,
        actor_id: Optional[str] = None,
        action: Optional[Union[AuditAction, str]] = None,
        limit: int = 100,
    ) -> list[AuditEntryResponse]:
        """List entries, newest first.

        Args:
            actor_id: Filter by actor
            action: Filter by action
            limit: Maximum entries returned
        """
        with self.db.read_session() as session:
            stmt = select(AuditEntry)
            if actor_id:
                stmt = stmt.where(AuditEntry.actor_id == actor_id)
            if action:
                action_name = action.value if isinstance(action, AuditAction) else action
                stmt = stmt.where(AuditEntry.action == action_name)
            stmt = stmt.order_by(AuditEntry.created_at.desc()).limit(limit)

            return [
                AuditEntryResponse(
                    id=entry.id,
                    actor_id=entry.actor_id,
                    action=entry.action,
                    metadata=entry.get_metadata(),
                    created_at=from_iso(entry.created_at),
                )
                for entry in session.execute(stmt).scalars()
            ]
