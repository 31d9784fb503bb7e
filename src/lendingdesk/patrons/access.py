"""Identity checks used inside lending transactions."""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..errors import ErrorKind, LendingError
from .models import Patron


def require_patron(
    session: Session, patron_id: Optional[str], for_update: bool = False
) -> Patron:
    """Resolve the calling patron.

    Args:
        session: Active transaction
        patron_id: Identity supplied by the caller
        for_update: Lock the patron row to serialize that patron's borrows

    Raises:
        LendingError: UNAUTHENTICATED if no identity was given or it is unknown
    """
    if not patron_id:
        raise LendingError(ErrorKind.UNAUTHENTICATED, "Not authenticated")
    stmt = select(Patron).where(Patron.id == patron_id)
    if for_update:
        stmt = stmt.with_for_update()
    patron = session.execute(stmt).scalar_one_or_none()
    if patron is None:
        raise LendingError(ErrorKind.UNAUTHENTICATED, f"Unknown patron: {patron_id}")
    return patron


def require_admin(session: Session, admin_id: Optional[str]) -> Patron:
    """Re-validate that the caller holds the administrator role.

    Raises:
        LendingError: UNAUTHENTICATED or UNAUTHORIZED
    """
    admin = require_patron(session, admin_id)
    if not admin.is_admin:
        raise LendingError(ErrorKind.UNAUTHORIZED, "Admin access required")
    return admin
