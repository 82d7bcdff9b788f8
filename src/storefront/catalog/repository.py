"""Repository for the Card aggregate.

Stock is the one value concurrent buyers fight over, so it is never written
back from a loaded aggregate. Sales and restorations are conditional updates
guarded on the card's current kind and, for bulk cards, on the stock value
that was read. A guard that matches nothing means someone else wrote first;
the read is repeated and the update retried.
"""

import structlog

from storefront.catalog.card import Card, CardStatus, InventoryKind
from storefront.domain import storefront
from storefront.errors import ConcurrentUpdateError

logger = structlog.get_logger(__name__)

_MAX_ATTEMPTS = 5


def _sale_update(card: Card, quantity: int) -> tuple[dict, dict]:
    """Return the (guard, changes) pair that records a sale on ``card``."""
    if card.kind is InventoryKind.SINGLE:
        guard = {"inventory_kind": InventoryKind.SINGLE.value}
        changes = {"stock": 0, "status": CardStatus.SOLD.value, "is_active": False}
    elif card.kind is InventoryKind.BULK:
        observed = card.stock or 0
        remaining = max(0, observed - quantity)
        guard = {"inventory_kind": InventoryKind.BULK.value, "stock": card.stock}
        changes = {"stock": remaining}
        if remaining == 0:
            changes["status"] = CardStatus.SOLD.value
    else:
        raise ValueError(f"Unhandled inventory kind: {card.kind}")
    return guard, changes


def _restore_update(card: Card, quantity: int) -> tuple[dict, dict]:
    """Return the (guard, changes) pair that puts sold units back on ``card``."""
    if card.kind is InventoryKind.SINGLE:
        guard = {"inventory_kind": InventoryKind.SINGLE.value}
        changes = {"stock": 1, "status": CardStatus.ACTIVE.value, "is_active": True}
    elif card.kind is InventoryKind.BULK:
        guard = {"inventory_kind": InventoryKind.BULK.value, "stock": card.stock}
        changes = {
            "stock": (card.stock or 0) + quantity,
            "status": CardStatus.ACTIVE.value,
            "is_active": True,
        }
    else:
        raise ValueError(f"Unhandled inventory kind: {card.kind}")
    return guard, changes


@storefront.repository(part_of=Card)
class CardRepository:
    def find_many(self, card_ids) -> dict[str, Card]:
        """Load cards by id. Missing ids are absent from the result."""
        ids = sorted({str(card_id) for card_id in card_ids})
        if not ids:
            return {}
        cards = self._dao.query.filter(id__in=ids).limit(len(ids)).all().items
        return {str(card.id): card for card in cards}

    def commit_sale(self, card_id: str, quantity: int) -> bool:
        """Take ``quantity`` units out of stock. Returns False if the card is gone."""
        return self._conditional_write(card_id, quantity, _sale_update, "sale")

    def restore_stock(self, card_id: str, quantity: int) -> bool:
        """Put ``quantity`` units back into stock. Returns False if the card is gone."""
        return self._conditional_write(card_id, quantity, _restore_update, "restore")

    def _conditional_write(self, card_id, quantity, build_update, action) -> bool:
        for attempt in range(1, _MAX_ATTEMPTS + 1):
            card = self._dao.query.filter(id=str(card_id)).all().first
            if card is None:
                logger.warning("Card not found for stock update", card_id=str(card_id), action=action)
                return False

            guard, changes = build_update(card, quantity)
            updated = self._dao.query.filter(id=str(card_id), **guard).update(**changes)
            if updated:
                logger.info(
                    "Card stock updated",
                    card_id=str(card_id),
                    action=action,
                    inventory_kind=card.inventory_kind,
                    quantity=quantity,
                    stock=changes["stock"],
                )
                return True

            logger.info("Card changed concurrently, retrying", card_id=str(card_id), action=action, attempt=attempt)

        raise ConcurrentUpdateError(f"Could not apply {action} to card {card_id}")
