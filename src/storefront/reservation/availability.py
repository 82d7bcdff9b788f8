"""Effective availability: stock minus what live holds already claim.

A single card is either free or held; any live hold by anyone else blocks it.
A bulk card is available up to its stock less the quantities held by others.
Holds whose window has passed stop counting here straight away, whether or
not the expiry sweep has marked them yet.

Checks run without a lock. Two shoppers racing for the last unit can both
pass; the atomic decrement at settlement is what finally decides.
"""

from dataclasses import dataclass

from protean.utils.globals import current_domain

from storefront.catalog.card import Card, CardStatus, InventoryKind
from storefront.errors import (
    AlreadyReserved,
    CardUnavailable,
    InsufficientStock,
    OutOfStock,
)
from storefront.reservation.reservation import Reservation
from storefront.utils.clock import utcnow


@dataclass(frozen=True)
class Availability:
    card_id: str
    inventory_kind: str
    stock: int
    reserved: int
    purchasable: bool

    @property
    def is_held(self) -> bool:
        return self.reserved > 0

    @property
    def effective_available(self) -> int:
        if not self.purchasable:
            return 0
        if self.inventory_kind == InventoryKind.SINGLE.value:
            return 0 if self.is_held else 1
        return max(0, self.stock - self.reserved)


def get_active_reserved_quantity(card_ids, now=None, exclude_holder=None) -> dict[str, int]:
    """Map each card id to the quantity held on it by live reservations."""
    repo = current_domain.repository_for(Reservation)
    return repo.reserved_quantities(card_ids, now or utcnow(), exclude_holder=exclude_holder)


def availability_for(card_ids, now=None) -> dict[str, Availability]:
    """Availability of every existing card in ``card_ids``."""
    cards = current_domain.repository_for(Card).find_many(card_ids)
    reserved = get_active_reserved_quantity(cards.keys(), now)
    return {
        card_id: Availability(
            card_id=card_id,
            inventory_kind=card.inventory_kind,
            stock=card.stock or 0,
            reserved=reserved.get(card_id, 0),
            purchasable=card.can_purchase() and (card.price or 0) > 0,
        )
        for card_id, card in cards.items()
    }


def ensure_can_hold(card_id: str, card: Card | None, requested: int, reserved: int) -> None:
    """Raise the matching availability error if ``requested`` units cannot be held."""
    if card is None:
        raise CardUnavailable(card_id, f"Card {card_id} does not exist", code="missing-item")
    if not card.is_active or CardStatus(card.status) == CardStatus.INACTIVE:
        raise CardUnavailable(card_id, f"Card {card_id} is not for sale")
    if (card.price or 0) <= 0:
        raise CardUnavailable(card_id, f"Card {card_id} has no valid price")

    if card.kind is InventoryKind.SINGLE:
        if CardStatus(card.status) == CardStatus.SOLD:
            raise CardUnavailable(card_id, f"Card {card_id} has been sold")
        if reserved > 0:
            raise AlreadyReserved(card_id)
        if requested > 1:
            raise InsufficientStock(card_id, requested, 1)
    elif card.kind is InventoryKind.BULK:
        available = max(0, (card.stock or 0) - reserved)
        if available == 0:
            raise OutOfStock(card_id)
        if requested > available:
            raise InsufficientStock(card_id, requested, available)
    else:
        raise ValueError(f"Unhandled inventory kind: {card.kind}")
