"""Policy store: the single active lending configuration."""

import logging
from typing import Any, Optional, Union

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..audit.schemas import AuditAction
from ..errors import ErrorKind, LendingError
from ..patrons.access import require_admin
from ..results import Result
from ..service import TransactionalService
from .models import POLICY_ROW_ID, Policy
from .schemas import DEFAULT_POLICY, PolicyResponse, PolicyUpdate, PolicyValues

logger = logging.getLogger(__name__)


def load_policy(session: Session, for_update: bool = False) -> Policy:
    """Read the policy row inside ``session``, creating defaults if missing."""
    stmt = select(Policy).where(Policy.id == POLICY_ROW_ID)
    if for_update:
        stmt = stmt.with_for_update()
    policy = session.execute(stmt).scalar_one_or_none()
    if policy is None:
        policy = Policy(id=POLICY_ROW_ID, **DEFAULT_POLICY.model_dump())
        session.add(policy)
        session.flush()
        logger.info("Initialized default lending policy")
    return policy


def _coerce_update(partial: Union[PolicyUpdate, dict[str, Any]]) -> PolicyUpdate:
    if isinstance(partial, PolicyUpdate):
        return partial
    try:
        return PolicyUpdate(**partial)
    except ValidationError as e:
        raise LendingError(ErrorKind.VALIDATION_ERROR, _describe(e)) from e


def _describe(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        field = ".".join(str(p) for p in err["loc"]) or "policy"
        parts.append(f"{field}: {err['msg']}")
    return "; ".join(parts)


class PolicyStore(TransactionalService):
    """Reads and updates the lending policy.

    Nothing is cached: every read goes to storage, so an update is visible to
    the next transaction that starts after it commits.
    """

    def get(self) -> PolicyResponse:
        """Get the active policy."""

        def _get(session: Session) -> PolicyResponse:
            return PolicyResponse.model_validate(load_policy(session))

        return self.db.run_transaction(_get)

    def update(self, partial: Union[PolicyUpdate, dict[str, Any]]) -> Result[PolicyResponse]:
        """Apply a partial update, all or nothing.

        Args:
            partial: Fields to change

        Returns:
            The new policy, or VALIDATION_ERROR
        """
        return self._run("update_policy", lambda s: self._apply(s, partial))

    def update_as_admin(
        self,
        partial: Union[PolicyUpdate, dict[str, Any]],
        admin_id: str,
    ) -> Result[PolicyResponse]:
        """Apply a partial update on behalf of an administrator and audit it."""
        changes: dict[str, Any] = {}

        def _update(session: Session) -> PolicyResponse:
            require_admin(session, admin_id)
            update = _coerce_update(partial)
            changes.update(update.model_dump(exclude_unset=True))
            return self._apply(session, update)

        result = self._run("update_policy", _update)
        return self._record(
            result, admin_id, AuditAction.SETTINGS_UPDATE, lambda _: dict(changes)
        )

    def _apply(
        self, session: Session, partial: Union[PolicyUpdate, dict[str, Any]]
    ) -> PolicyResponse:
        update = _coerce_update(partial)
        policy = load_policy(session, for_update=True)

        current = PolicyValues.model_validate(policy, from_attributes=True)
        merged = current.model_dump()
        merged.update(update.model_dump(exclude_unset=True))
        for field, value in merged.items():
            if value is None:
                raise LendingError(ErrorKind.VALIDATION_ERROR, f"{field}: must not be null")
        try:
            values = PolicyValues(**merged)
        except ValidationError as e:
            raise LendingError(ErrorKind.VALIDATION_ERROR, _describe(e)) from e

        for field, value in values.model_dump().items():
            setattr(policy, field, value)
        session.flush()
        session.refresh(policy)
        return PolicyResponse.model_validate(policy)

    def get_values(self, session: Optional[Session] = None) -> PolicyValues:
        """Get the policy as plain values, optionally inside a caller's session."""
        if session is not None:
            return PolicyValues.model_validate(load_policy(session), from_attributes=True)
        return PolicyValues(**self.get().model_dump(exclude={"updated_at"}))
