"""Catalog administration.

Every mutation here is an administrator action: the caller's role is
re-validated inside the transaction and the change is audited after commit.
"""

import logging
from typing import Any, Iterable, Optional, Union

from pydantic import ValidationError
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..audit.schemas import AuditAction
from ..errors import ConsistencyFault, ErrorKind, LendingError
from ..patrons.access import require_admin
from ..results import Result
from ..service import TransactionalService
from . import ledger
from .models import Item
from .schemas import BulkItemRow, BulkUpsertResult, ItemCreate, ItemUpdate

logger = logging.getLogger(__name__)


class CatalogManager(TransactionalService):
    """Manages catalog items and their copy counts."""

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_item(self, item_id: str) -> Optional[Item]:
        """Get an item by ID."""
        with self.db.read_session() as session:
            item = session.get(Item, item_id)
            if item:
                session.expunge(item)
            return item

    def get_item_by_code(self, code: str) -> Optional[Item]:
        """Get an item by its external code."""
        with self.db.read_session() as session:
            item = session.execute(
                select(Item).where(Item.code == code)
            ).scalar_one_or_none()
            if item:
                session.expunge(item)
            return item

    def list_items(
        self,
        active_only: bool = False,
        search: Optional[str] = None,
        category: Optional[str] = None,
    ) -> list[Item]:
        """List items ordered by title.

        Args:
            active_only: Hide inactive items
            search: Case-insensitive match on title, author or code
            category: Filter by category
        """
        with self.db.read_session() as session:
            stmt = select(Item).order_by(Item.title)
            if active_only:
                stmt = stmt.where(Item.active.is_(True))
            if category:
                stmt = stmt.where(Item.category == category)
            if search:
                pattern = f"%{search.lower()}%"
                stmt = stmt.where(
                    or_(
                        func.lower(Item.title).like(pattern),
                        func.lower(Item.author).like(pattern),
                        func.lower(Item.code).like(pattern),
                    )
                )
            items = session.execute(stmt).scalars().all()
            for item in items:
                session.expunge(item)
            return list(items)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def create_item(self, data: ItemCreate, admin_id: str) -> Result[Item]:
        """Add an item with all copies available.

        Returns:
            Created item, or VALIDATION_ERROR if the code is taken
        """

        def _create(session: Session) -> Item:
            require_admin(session, admin_id)
            item = self._insert(session, data)
            session.expunge(item)
            return item

        result = self._run("create_item", _create)
        return self._record(
            result,
            admin_id,
            AuditAction.ITEM_CREATE,
            lambda item: {"item_id": item.id, "code": item.code},
        )

    def update_item(self, item_id: str, data: ItemUpdate, admin_id: str) -> Result[Item]:
        """Edit descriptive fields, the active flag, or the total copy count."""
        changes = data.model_dump(exclude_unset=True)

        def _update(session: Session) -> Item:
            require_admin(session, admin_id)
            item = ledger.lock_item(session, item_id)

            if "total_copies" in changes:
                item = ledger.adjust_total(
                    session, item_id, changes["total_copies"], self.clock()
                )

            for field, value in changes.items():
                if field == "total_copies":
                    continue
                if value is None and field in ("title", "active"):
                    raise LendingError(ErrorKind.VALIDATION_ERROR, f"{field} must not be null")
                if value is None and field == "author":
                    value = ""
                setattr(item, field, value)

            session.flush()
            session.refresh(item)
            session.expunge(item)
            return item

        result = self._run("update_item", _update)
        return self._record(
            result,
            admin_id,
            AuditAction.ITEM_UPDATE,
            lambda item: {"item_id": item.id, "changes": changes},
        )

    def adjust_total(self, item_id: str, new_total: int, admin_id: str) -> Result[Item]:
        """Set an item's total copies (administrative catalog total adjustment).

        Returns:
            Updated item, or BELOW_BORROWED if fewer copies than are on loan
        """
        previous: dict[str, int] = {}

        def _adjust(session: Session) -> Item:
            require_admin(session, admin_id)
            before = ledger.lock_item(session, item_id)
            previous["total_copies"] = before.total_copies
            item = ledger.adjust_total(session, item_id, new_total, self.clock())
            session.expunge(item)
            return item

        result = self._run("adjust_total", _adjust)
        return self._record(
            result,
            admin_id,
            AuditAction.ITEM_ADJUST_TOTAL,
            lambda item: {
                "item_id": item.id,
                "from": previous.get("total_copies"),
                "to": item.total_copies,
            },
        )

    def delete_item(self, item_id: str, admin_id: str) -> Result[str]:
        """Delete an item and its returned loan history.

        Returns:
            Deleted item ID, or BELOW_BORROWED if copies are still on loan
        """
        deleted: dict[str, str] = {}

        def _delete(session: Session) -> str:
            require_admin(session, admin_id)
            item = ledger.lock_item(session, item_id)
            if ledger.count_open_loans(session, item_id) > 0:
                raise LendingError(
                    ErrorKind.BELOW_BORROWED, "Cannot delete item with active loans"
                )
            deleted["code"] = item.code
            session.delete(item)
            session.flush()
            return item_id

        result = self._run("delete_item", _delete)
        return self._record(
            result,
            admin_id,
            AuditAction.ITEM_DELETE,
            lambda removed_id: {"item_id": removed_id, "code": deleted.get("code")},
        )

    def bulk_upsert(
        self,
        rows: Iterable[Union[BulkItemRow, dict[str, Any]]],
        admin_id: str,
    ) -> Result[BulkUpsertResult]:
        """Insert new codes and update existing ones from parsed upload rows.

        Each row is applied in its own savepoint; a bad row is counted as
        failed without affecting the others. Updates keep borrowed copies
        borrowed and never shrink the total below them.
        """
        rows = list(rows)

        def _upsert(session: Session) -> BulkUpsertResult:
            require_admin(session, admin_id)
            outcome = BulkUpsertResult()

            for index, raw in enumerate(rows, start=1):
                try:
                    row = raw if isinstance(raw, BulkItemRow) else BulkItemRow(**raw)
                except ValidationError as e:
                    outcome.failed += 1
                    outcome.errors.append(f"row {index}: {e.errors()[0]['msg']}")
                    continue

                try:
                    with session.begin_nested():
                        if self._upsert_row(session, row):
                            outcome.inserted += 1
                        else:
                            outcome.updated += 1
                except ConsistencyFault:
                    raise
                except (LendingError, IntegrityError) as e:
                    message = e.message if isinstance(e, LendingError) else "constraint violation"
                    logger.info("Bulk row %d (%s) failed: %s", index, row.code, message)
                    outcome.failed += 1
                    outcome.errors.append(f"row {index} ({row.code}): {message}")

            return outcome

        result = self._run("bulk_upsert", _upsert)
        return self._record(
            result,
            admin_id,
            AuditAction.BULK_UPLOAD,
            lambda r: {
                "inserted": r.inserted,
                "updated": r.updated,
                "failed": r.failed,
                "total": len(rows),
            },
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _insert(self, session: Session, data: Union[ItemCreate, BulkItemRow]) -> Item:
        taken = session.execute(select(Item.id).where(Item.code == data.code)).first()
        if taken:
            raise LendingError(
                ErrorKind.VALIDATION_ERROR, "An item with this code already exists"
            )

        total = data.total_copies or 1
        item = Item(
            code=data.code,
            title=data.title,
            author=data.author,
            category=data.category,
            image_url=data.image_url,
            total_copies=total,
            available_copies=total,
            active=True,
        )
        session.add(item)
        try:
            session.flush()
        except IntegrityError as e:
            raise LendingError(
                ErrorKind.VALIDATION_ERROR, "An item with this code already exists"
            ) from e
        session.refresh(item)
        return item

    def _upsert_row(self, session: Session, row: BulkItemRow) -> bool:
        """Apply one row; returns True if it inserted a new item."""
        existing = session.execute(
            select(Item).where(Item.code == row.code).with_for_update()
        ).scalar_one_or_none()

        if existing is None:
            self._insert(session, row)
            return True

        if row.total_copies is not None and row.total_copies != existing.total_copies:
            existing = ledger.adjust_total(session, existing.id, row.total_copies, self.clock())

        existing.title = row.title
        existing.author = row.author
        existing.category = row.category
        existing.image_url = row.image_url
        session.flush()
        return False
