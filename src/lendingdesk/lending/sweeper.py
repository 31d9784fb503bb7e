"""Overdue sweeper: reclassifies lapsed loans as OVERDUE."""

import logging
import threading
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from ..config import get_config
from ..db.models import utc_now
from ..db.sqlite import Database, get_db
from ..errors import TransactionUnavailable
from ..loans.state import mark_overdue
from ..service import Clock

logger = logging.getLogger(__name__)


class OverdueSweeper:
    """Flips BORROWED loans past their due date to OVERDUE.

    A sweep is one guarded UPDATE. It never touches RETURNED loans and never
    clears OVERDUE, so running it again, or alongside returns and renewals,
    changes nothing it should not.
    """

    def __init__(self, db: Optional[Database] = None, clock: Optional[Clock] = None):
        self.db = db or get_db()
        self.clock = clock or utc_now

    def sweep(self) -> int:
        """Run one sweep.

        Returns:
            Number of loans that became OVERDUE

        Raises:
            TransactionUnavailable: storage stayed contended for every retry
        """
        updated = self.db.run_transaction(lambda session: mark_overdue(session, self.clock()))
        if updated:
            logger.info("Marked %d loan(s) overdue", updated)
        else:
            logger.debug("Sweep found no newly lapsed loans")
        return updated

    def run_periodically(
        self,
        interval: Optional[float] = None,
        stop_event: Optional[threading.Event] = None,
        max_runs: Optional[int] = None,
    ) -> int:
        """Sweep on a fixed interval until stopped.

        Args:
            interval: Seconds between sweeps (LENDINGDESK_SWEEP_INTERVAL if not provided)
            stop_event: Set to stop after the current wait
            max_runs: Stop after this many sweeps

        Returns:
            Total loans marked overdue across all runs
        """
        interval = interval if interval is not None else get_config().sweep_interval
        stop_event = stop_event or threading.Event()
        total = 0
        runs = 0

        while not stop_event.is_set():
            try:
                total += self.sweep()
            except TransactionUnavailable as e:
                logger.warning("Sweep skipped, storage busy: %s", e)
            except SQLAlchemyError as e:
                logger.error("Sweep failed: %s", e)
            runs += 1
            if max_runs is not None and runs >= max_runs:
                break
            stop_event.wait(interval)

        return total
