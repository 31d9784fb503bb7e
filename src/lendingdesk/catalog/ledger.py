"""Inventory ledger: copy-count accounting for catalog items.

All functions run inside a caller's transaction. Counter changes are
single guarded UPDATE statements, so availability can never go below zero
or above the total even if two writers interleave.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ..db.models import to_iso, utc_now
from ..errors import ConsistencyFault, ErrorKind, LendingError
from ..loans.models import OPEN_STATUSES, Loan
from .models import Item

logger = logging.getLogger(__name__)


def lock_item(session: Session, item_id: str) -> Item:
    """Load an item for update.

    Raises:
        LendingError: NOT_FOUND
    """
    item = session.execute(
        select(Item).where(Item.id == item_id).with_for_update()
    ).scalar_one_or_none()
    if item is None:
        raise LendingError(ErrorKind.NOT_FOUND, "Item not found")
    return item


def count_open_loans(session: Session, item_id: str) -> int:
    """Number of BORROWED or OVERDUE loans on an item."""
    return session.execute(
        select(func.count()).select_from(Loan).where(
            Loan.item_id == item_id,
            Loan.status.in_(OPEN_STATUSES),
        )
    ).scalar_one()


def reserve_copy(session: Session, item_id: str, now: Optional[datetime] = None) -> Item:
    """Take one copy out of availability.

    Raises:
        LendingError: NOT_FOUND, INACTIVE or NOT_AVAILABLE
    """
    item = lock_item(session, item_id)
    if not item.active:
        raise LendingError(ErrorKind.INACTIVE, "Item is not available for lending")

    stmt = (
        update(Item)
        .where(
            Item.id == item_id,
            Item.active.is_(True),
            Item.available_copies > 0,
        )
        .values(
            available_copies=Item.available_copies - 1,
            updated_at=to_iso(now or utc_now()),
        )
        .execution_options(synchronize_session=False)
    )
    if session.execute(stmt).rowcount != 1:
        raise LendingError(ErrorKind.NOT_AVAILABLE, "No copies available")

    session.refresh(item)
    return item


def release_copy(session: Session, item_id: str, now: Optional[datetime] = None) -> Item:
    """Put one copy back into availability.

    Raises:
        ConsistencyFault: the item is missing or already has every copy available
    """
    stmt = (
        update(Item)
        .where(
            Item.id == item_id,
            Item.available_copies < Item.total_copies,
        )
        .values(
            available_copies=Item.available_copies + 1,
            updated_at=to_iso(now or utc_now()),
        )
        .execution_options(synchronize_session=False)
    )
    if session.execute(stmt).rowcount != 1:
        item = session.get(Item, item_id)
        if item is None:
            raise ConsistencyFault(f"Loan references missing item {item_id}")
        raise ConsistencyFault(
            f"Item {item.code} already has all {item.total_copies} copies available"
        )

    item = session.get(Item, item_id)
    session.refresh(item)
    return item


def adjust_total(
    session: Session, item_id: str, new_total: int, now: Optional[datetime] = None
) -> Item:
    """Change an item's total copy count, keeping borrowed copies borrowed.

    Raises:
        LendingError: NOT_FOUND, VALIDATION_ERROR or BELOW_BORROWED
        ConsistencyFault: counters disagree with the open loans
    """
    if new_total < 1:
        raise LendingError(ErrorKind.VALIDATION_ERROR, "Total copies must be at least 1")

    item = lock_item(session, item_id)
    borrowed = item.total_copies - item.available_copies

    open_loans = count_open_loans(session, item_id)
    if open_loans != borrowed:
        raise ConsistencyFault(
            f"Item {item.code} counts {borrowed} borrowed copies "
            f"but has {open_loans} open loans"
        )

    if new_total < borrowed:
        raise LendingError(
            ErrorKind.BELOW_BORROWED,
            f"Cannot reduce total copies below {borrowed} (currently borrowed)",
        )

    stmt = (
        update(Item)
        .where(
            Item.id == item_id,
            Item.total_copies - Item.available_copies == borrowed,
        )
        .values(
            total_copies=new_total,
            available_copies=new_total - borrowed,
            updated_at=to_iso(now or utc_now()),
        )
        .execution_options(synchronize_session=False)
    )
    if session.execute(stmt).rowcount != 1:
        raise ConsistencyFault(f"Item {item.code} changed while adjusting its total")

    session.refresh(item)
    logger.debug("Item %s total %d (borrowed %d)", item.code, new_total, borrowed)
    return item
