"""SQLAlchemy model for the administrative audit trail."""

import json
from typing import Any, Optional

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..db.models import Base, generate_uuid, now_iso


class AuditEntry(Base):
    """One privileged mutation. Rows are only ever inserted."""

    __tablename__ = "audit_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    actor_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    metadata_json: Mapped[Optional[str]] = mapped_column("metadata", Text)
    created_at: Mapped[str] = mapped_column(String(32), default=now_iso, index=True)

    def __repr__(self) -> str:
        return f"<AuditEntry(id={self.id}, action={self.action}, actor={self.actor_id})>"

    def get_metadata(self) -> dict[str, Any]:
        if self.metadata_json:
            return json.loads(self.metadata_json)
        return {}

    def set_metadata(self, metadata: Optional[dict[str, Any]]) -> None:
        self.metadata_json = json.dumps(metadata or {}, default=str, sort_keys=True)
