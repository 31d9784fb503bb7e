"""Patron registry."""

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..audit.schemas import AuditAction
from ..errors import ErrorKind, LendingError
from ..results import Result
from ..service import TransactionalService
from .access import require_admin
from .models import Patron
from .schemas import PatronCreate, PatronRole

logger = logging.getLogger(__name__)


class PatronManager(TransactionalService):
    """Registers patrons and manages administrator roles.

    Authentication happens upstream; this registry only records who exists
    and which role they hold, so the engine can re-validate privileges.
    """

    def register_patron(self, data: PatronCreate) -> Result[Patron]:
        """Register a new patron.

        Args:
            data: Patron creation data

        Returns:
            Created patron, or VALIDATION_ERROR for a taken registration number
        """

        def _register(session: Session) -> Patron:
            if data.registered_number:
                taken = session.execute(
                    select(Patron.id).where(
                        Patron.registered_number == data.registered_number
                    )
                ).first()
                if taken:
                    raise LendingError(
                        ErrorKind.VALIDATION_ERROR,
                        "This registration number is already in use",
                    )

            patron = Patron(
                full_name=data.full_name,
                email=data.email,
                registered_number=data.registered_number,
                role=data.role.value,
            )
            session.add(patron)
            try:
                session.flush()
            except IntegrityError as e:
                raise LendingError(
                    ErrorKind.VALIDATION_ERROR,
                    "This registration number is already in use",
                ) from e
            session.refresh(patron)
            session.expunge(patron)
            return patron

        return self._run("register_patron", _register)

    def get_patron(self, patron_id: str) -> Optional[Patron]:
        """Get a patron by ID."""
        with self.db.read_session() as session:
            patron = session.get(Patron, patron_id)
            if patron:
                session.expunge(patron)
            return patron

    def list_patrons(self, role: Optional[PatronRole] = None) -> list[Patron]:
        """List patrons ordered by name."""
        with self.db.read_session() as session:
            stmt = select(Patron).order_by(Patron.full_name)
            if role:
                stmt = stmt.where(Patron.role == role.value)
            patrons = session.execute(stmt).scalars().all()
            for p in patrons:
                session.expunge(p)
            return list(patrons)

    def is_admin(self, patron_id: str) -> bool:
        patron = self.get_patron(patron_id)
        return bool(patron and patron.is_admin)

    def set_role(self, patron_id: str, role: PatronRole, admin_id: str) -> Result[Patron]:
        """Change a patron's role.

        The last remaining administrator cannot be demoted.

        Args:
            patron_id: Patron to change
            role: New role
            admin_id: Administrator performing the change
        """
        previous: dict[str, str] = {}

        def _set_role(session: Session) -> Patron:
            require_admin(session, admin_id)

            patron = session.execute(
                select(Patron).where(Patron.id == patron_id).with_for_update()
            ).scalar_one_or_none()
            if patron is None:
                raise LendingError(ErrorKind.NOT_FOUND, "Patron not found")

            if patron.is_admin and role != PatronRole.ADMIN:
                admins = session.execute(
                    select(func.count()).select_from(Patron).where(
                        Patron.role == PatronRole.ADMIN.value
                    )
                ).scalar_one()
                if admins <= 1:
                    raise LendingError(
                        ErrorKind.VALIDATION_ERROR, "Cannot demote the last admin"
                    )

            previous["role"] = patron.role
            patron.role = role.value
            session.flush()
            session.expunge(patron)
            return patron

        result = self._run("set_role", _set_role)
        return self._record(
            result,
            admin_id,
            AuditAction.PATRON_ROLE_CHANGE,
            lambda p: {"patron_id": p.id, "from": previous.get("role"), "to": p.role},
        )
