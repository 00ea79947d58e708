"""Inventory service: batched, per-item-isolated mutations and read queries."""

import logging
import math
from collections.abc import Iterable
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pantry_ingest.config import Settings, get_settings
from pantry_ingest.models.audit_log import AuditLog
from pantry_ingest.models.category import Category
from pantry_ingest.models.enums import AuditActionType, InventoryAction, ResultAction
from pantry_ingest.models.grocery_list import GroceryList
from pantry_ingest.models.inventory import InventoryItem, normalize_name
from pantry_ingest.schemas.inventory import (
    ApplyOutcome,
    ApplySummary,
    ApplyUpdatesResponse,
    UpdateRecord,
)
from pantry_ingest.services.normalizer import coerce_expiration

logger = logging.getLogger(__name__)

AUDIT_TRUNCATE = 50

DEFAULT_UNIT = "unit"
DEFAULT_CATEGORY = "uncategorized"
DEFAULT_LOW_STOCK_THRESHOLD = 1.0

DEFAULT_CATEGORIES: tuple[dict[str, str], ...] = (
    {"slug": "dairy", "name": "Dairy", "color": "#FFE4B5"},
    {"slug": "produce", "name": "Produce", "color": "#90EE90"},
    {"slug": "meat", "name": "Meat & Poultry", "color": "#FFB6C1"},
    {"slug": "pantry", "name": "Pantry", "color": "#DEB887"},
    {"slug": "frozen", "name": "Frozen", "color": "#B0E0E6"},
    {"slug": "beverages", "name": "Beverages", "color": "#FFFFE0"},
    {"slug": "snacks", "name": "Snacks", "color": "#F0E68C"},
    {"slug": "bakery", "name": "Bakery", "color": "#FFDAB9"},
)


class InvalidUpdateError(ValueError):
    """A single update failed validation; only that item fails."""


def compute_quantity(current: float, delta: float, action: InventoryAction) -> float:
    """Apply an action to a stored quantity, never going below zero."""
    if action == InventoryAction.ADD:
        return current + delta
    if action == InventoryAction.SUBTRACT:
        return max(0.0, current - delta)
    return max(0.0, delta)


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


class InventoryService:
    """Service for inventory operations."""

    def __init__(self, db: Session, settings: Settings | None = None):
        self.db = db
        self.settings = settings or get_settings()

    # --- Mutations -------------------------------------------------------

    @staticmethod
    def _validate_update(
        update: UpdateRecord,
    ) -> tuple[str, float, InventoryAction, bool, Any]:
        """Check one update, returning (name, quantity, action, has_expiration, expiration).

        Raises:
            InvalidUpdateError: If the update cannot be applied.
        """
        name = (update.name or "").strip()
        action_raw = (update.action or "").strip().lower()
        if not name or update.quantity is None or not action_raw:
            raise InvalidUpdateError("Missing required fields: name, quantity, action")

        try:
            action = InventoryAction(action_raw)
        except ValueError:
            raise InvalidUpdateError(
                f'Invalid action "{action_raw}". Use add, subtract, or set.'
            ) from None

        try:
            quantity = float(update.quantity)
        except (TypeError, ValueError):
            raise InvalidUpdateError("Quantity must be a non-negative number") from None
        if not math.isfinite(quantity) or quantity < 0:
            raise InvalidUpdateError("Quantity must be a non-negative number")

        has_expiration = update.is_set("expiration")
        expiration = None
        if has_expiration:
            ok, expiration = coerce_expiration(update.expiration)
            if not ok:
                raise InvalidUpdateError(
                    f"Invalid expiration date: {update.expiration!r} (expected ISO 8601 format)"
                )

        return name, quantity, action, has_expiration, expiration

    def _create_item(
        self,
        user_id: str,
        name: str,
        quantity: float,
        update: UpdateRecord,
        expiration: Any,
    ) -> InventoryItem:
        """Create a record holding the supplied quantity, whatever the action."""
        threshold = update.low_stock_threshold
        item = InventoryItem(
            user_id=user_id,
            name=name,
            normalized_name=normalize_name(name),
            quantity=quantity,
            unit=_clean(update.unit) or DEFAULT_UNIT,
            category=_clean(update.category) or DEFAULT_CATEGORY,
            location=_clean(update.location),
            brand=_clean(update.brand),
            notes=update.notes,
            low_stock_threshold=(
                max(0.0, threshold)
                if threshold is not None and math.isfinite(threshold)
                else DEFAULT_LOW_STOCK_THRESHOLD
            ),
            expiration=expiration,
        )
        self.db.add(item)
        return item

    @staticmethod
    def _update_item(
        item: InventoryItem,
        quantity: float,
        action: InventoryAction,
        update: UpdateRecord,
        has_expiration: bool,
        expiration: Any,
    ) -> None:
        """Apply the quantity change and every field the caller supplied."""
        item.quantity = compute_quantity(item.quantity or 0.0, quantity, action)

        # Required columns: an explicit null leaves the stored value alone
        if update.is_set("unit") and _clean(update.unit):
            item.unit = _clean(update.unit)
        if update.is_set("category") and _clean(update.category):
            item.category = _clean(update.category)
        if (
            update.is_set("low_stock_threshold")
            and update.low_stock_threshold is not None
            and math.isfinite(update.low_stock_threshold)
        ):
            item.low_stock_threshold = max(0.0, update.low_stock_threshold)

        # Optional columns: an explicit null clears
        if update.is_set("location"):
            item.location = _clean(update.location)
        if update.is_set("brand"):
            item.brand = _clean(update.brand)
        if update.is_set("notes"):
            item.notes = update.notes
        if has_expiration:
            item.expiration = expiration

    def _apply_one(
        self,
        user_id: str,
        update: UpdateRecord,
        index: dict[str, InventoryItem],
    ) -> ApplyOutcome:
        name, quantity, action, has_expiration, expiration = self._validate_update(update)
        key = normalize_name(name)
        existing = index.get(key)

        if existing is None:
            item = self._create_item(user_id, name, quantity, update, expiration)
            index[key] = item
            try:
                self.db.commit()
            except SQLAlchemyError:
                index.pop(key, None)
                raise
            self.db.refresh(item)
            return ApplyOutcome(
                id=item.id,
                name=name,
                success=True,
                result_action=ResultAction.CREATED,
                quantity=item.quantity,
                expiration=item.expiration,
                message=f"Added {name}: {item.quantity:g} {item.unit}",
            )

        self._update_item(existing, quantity, action, update, has_expiration, expiration)
        self.db.commit()
        self.db.refresh(existing)

        verb = {"add": "Added", "subtract": "Used", "set": "Set"}[action.value]
        return ApplyOutcome(
            id=existing.id,
            name=name,
            success=True,
            result_action=ResultAction.UPDATED,
            quantity=existing.quantity,
            expiration=existing.expiration,
            message=f"{verb} {name}: now {existing.quantity:g} {existing.unit}",
        )

    def apply_updates(
        self,
        user_id: str,
        updates: list[UpdateRecord],
        action_type: AuditActionType = AuditActionType.UPDATE,
    ) -> ApplyUpdatesResponse:
        """Apply a batch of updates for one user (or household partition).

        The user's records are read once into a name index and updates are
        processed in order against it, so two updates to the same name in one
        batch compose. Each successful item is committed on its own; a failed
        item never rolls back earlier ones and never stops later ones.
        """
        snapshot = self.db.query(InventoryItem).filter(InventoryItem.user_id == user_id).all()
        index = {item.normalized_name: item for item in snapshot}

        outcomes: list[ApplyOutcome] = []
        for update in updates:
            display_name = (update.name or "").strip() or "unknown"
            try:
                outcomes.append(self._apply_one(user_id, update, index))
            except InvalidUpdateError as e:
                outcomes.append(ApplyOutcome(name=display_name, success=False, error=str(e)))
            except SQLAlchemyError as e:
                logger.error(f"Failed to apply inventory update for {display_name!r}: {e}")
                self.db.rollback()
                outcomes.append(
                    ApplyOutcome(
                        name=display_name, success=False, error="Failed to process update"
                    )
                )

        successful = sum(1 for outcome in outcomes if outcome.success)
        summary = ApplySummary(
            total=len(outcomes), successful=successful, failed=len(outcomes) - successful
        )
        validation_errors = [
            f"{outcome.name}: {outcome.error}"
            for outcome in outcomes
            if not outcome.success and outcome.error
        ]

        self._record_audit_log(user_id, action_type, updates, outcomes, summary, validation_errors)

        return ApplyUpdatesResponse(
            success=summary.failed == 0,
            outcomes=outcomes,
            summary=summary,
            validation_errors=validation_errors,
        )

    def _record_audit_log(
        self,
        user_id: str,
        action_type: AuditActionType,
        updates: list[UpdateRecord],
        outcomes: list[ApplyOutcome],
        summary: ApplySummary,
        validation_errors: list[str],
    ) -> None:
        """Write one audit entry for the batch. Failures are logged, not raised."""
        try:
            requested = [
                {
                    "name": update.name,
                    "action": update.action,
                    "quantity": update.quantity,
                    "unit": update.unit,
                    "category": update.category,
                }
                for update in updates[:AUDIT_TRUNCATE]
            ]
            description = (
                f"Processed {summary.successful}/{summary.total} inventory updates "
                f"({action_type.value})"
            )
            entry = AuditLog(
                user_id=user_id,
                action=action_type.value,
                item_ids=[o.id for o in outcomes if o.success and o.id is not None],
                description=description[:500],
                details={
                    "summary": summary.model_dump(),
                    "validation_errors": validation_errors,
                    "results": [o.model_dump(mode="json") for o in outcomes[:AUDIT_TRUNCATE]],
                    "requested_updates": requested,
                },
            )
            self.db.add(entry)
            self.db.commit()
        except Exception as e:
            logger.error(f"Failed to record audit log entry for user {user_id}: {e}")
            self.db.rollback()

    # --- Queries ---------------------------------------------------------

    def list_items(
        self,
        user_id: str,
        category: str | None = None,
        location: str | None = None,
        search: str | None = None,
        low_stock_only: bool = False,
    ) -> list[InventoryItem]:
        """List a user's inventory, most recently updated first."""
        query = self.db.query(InventoryItem).filter(InventoryItem.user_id == user_id)
        if category:
            query = query.filter(InventoryItem.category == category)
        if location:
            query = query.filter(InventoryItem.location == location)
        if search:
            query = query.filter(InventoryItem.normalized_name.contains(search.strip().lower()))
        if low_stock_only:
            query = query.filter(InventoryItem.quantity <= InventoryItem.low_stock_threshold)
        return query.order_by(InventoryItem.updated_at.desc(), InventoryItem.id.desc()).all()

    def low_stock(self, user_id: str, include_out_of_stock: bool = True) -> list[InventoryItem]:
        """Items at or below their low-stock threshold, grouped by category."""
        query = self.db.query(InventoryItem).filter(
            InventoryItem.user_id == user_id,
            InventoryItem.quantity <= InventoryItem.low_stock_threshold,
        )
        if not include_out_of_stock:
            query = query.filter(InventoryItem.quantity > 0)
        return query.order_by(InventoryItem.category, InventoryItem.name).all()

    def fetch_context(
        self, user_id: str, include_lists: bool = False
    ) -> dict[str, list[Any]]:
        """Recent inventory, its low-stock subset and (optionally) active lists."""
        inventory = (
            self.db.query(InventoryItem)
            .filter(InventoryItem.user_id == user_id)
            .order_by(InventoryItem.updated_at.desc(), InventoryItem.id.desc())
            .limit(self.settings.context_inventory_limit)
            .all()
        )
        active_lists: list[GroceryList] = []
        if include_lists:
            active_lists = (
                self.db.query(GroceryList)
                .filter(GroceryList.user_id == user_id, GroceryList.status == "active")
                .order_by(GroceryList.updated_at.desc(), GroceryList.id.desc())
                .limit(self.settings.context_list_limit)
                .all()
            )
        return {
            "inventory": inventory,
            "low_stock": [item for item in inventory if item.is_low_stock],
            "active_lists": active_lists,
        }

    def audit_logs(self, user_id: str, limit: int = 50) -> list[AuditLog]:
        """Most recent audit entries for a user."""
        return (
            self.db.query(AuditLog)
            .filter(AuditLog.user_id == user_id)
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .limit(limit)
            .all()
        )

    # --- Administration --------------------------------------------------

    def seed_default_categories(self, user_ids: Iterable[str]) -> int:
        """Create the default categories for users that have none.

        Writes are committed in chunks of at most ``max_batch_operations``
        rows. Returns the number of categories created.
        """
        user_ids = list(dict.fromkeys(user_ids))
        if not user_ids:
            return 0

        seeded = {
            row[0]
            for row in self.db.query(Category.user_id)
            .filter(Category.user_id.in_(user_ids))
            .distinct()
            .all()
        }

        chunk_size = self.settings.max_batch_operations
        pending = 0
        created = 0
        for user_id in user_ids:
            if user_id in seeded:
                continue
            for position, category in enumerate(DEFAULT_CATEGORIES):
                self.db.add(Category(user_id=user_id, sort_order=position, **category))
                pending += 1
                if pending >= chunk_size:
                    self.db.commit()
                    created += pending
                    pending = 0
        if pending:
            self.db.commit()
            created += pending

        logger.info(f"Seeded {created} default categories for {len(user_ids)} users")
        return created
