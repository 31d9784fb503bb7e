"""Shared plumbing for managers that mutate lending state.

Each public operation runs one unit of work through
:meth:`Database.run_transaction` and reports a tagged result; privileged
operations append an audit entry after the commit.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .audit.manager import AuditLog
from .audit.schemas import AuditAction
from .db.models import utc_now
from .db.sqlite import Database, get_db
from .errors import ConsistencyFault, ErrorKind, LendingError, TransactionUnavailable
from .results import Failure, Result, Success

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], datetime]


class TransactionalService:
    """Base class for lending managers."""

    def __init__(
        self,
        db: Optional[Database] = None,
        clock: Optional[Clock] = None,
        audit: Optional[AuditLog] = None,
    ):
        """Initialize the service.

        Args:
            db: Database instance (uses global if not provided)
            clock: Returns the current aware UTC time
            audit: Audit log (created on the same database if not provided)
        """
        self.db = db or get_db()
        self.clock = clock or utc_now
        self.audit = audit or AuditLog(self.db)

    def _run(self, operation: str, work: Callable[[Session], T]) -> Result[T]:
        """Execute ``work`` atomically and convert errors to ``Failure``."""
        try:
            value = self.db.run_transaction(work)
        except ConsistencyFault as e:
            logger.critical("%s aborted on consistency fault: %s", operation, e.message)
            return Failure(e.kind, e.message)
        except LendingError as e:
            logger.debug("%s rejected: %s", operation, e)
            return Failure(e.kind, e.message)
        except TransactionUnavailable as e:
            logger.error("%s unavailable: %s", operation, e)
            return Failure(ErrorKind.UNAVAILABLE, "Storage is busy, try again later")
        except SQLAlchemyError as e:
            logger.error("%s failed in storage: %s", operation, e)
            return Failure(ErrorKind.UNAVAILABLE, "Storage error, try again later")

        logger.info("%s committed", operation)
        return Success(value)

    def _record(
        self,
        result: Result[T],
        actor_id: str,
        action: AuditAction,
        metadata: Callable[[T], dict[str, Any]],
    ) -> Result[T]:
        """Audit a committed privileged mutation.

        An audit failure does not undo the mutation; the result is downgraded
        to ``audit_recorded=False`` instead.
        """
        if not result.ok:
            return result
        try:
            self.audit.append(actor_id, action, metadata(result.value))
        except (SQLAlchemyError, TransactionUnavailable) as e:
            logger.warning(
                "%s committed but audit entry was not written: %s", action.value, e
            )
            return Success(result.value, audit_recorded=False)
        return result
