"""Card aggregate (CQRS): the inventory record a listing sells from.

A card is either a one-of-a-kind ``single`` or a ``bulk`` listing with a stock
count. The catalog owns creation and pricing; the checkout core only reads
cards and changes their stock through the conditional updates on
``CardRepository``.

Lifecycle status and the ``is_active`` kill switch are independent: a card
can be ``active`` but switched off, and either one blocks a purchase.
"""

from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Integer, String

from storefront.catalog.events import CardListed
from storefront.domain import storefront
from storefront.utils.clock import utcnow


class InventoryKind(Enum):
    SINGLE = "single"
    BULK = "bulk"


class CardStatus(Enum):
    ACTIVE = "active"
    SOLD = "sold"
    INACTIVE = "inactive"


@storefront.aggregate
class Card:
    name = String(required=True, max_length=255)
    set_name = String(max_length=255)
    rarity = String(max_length=100)
    price = Float(required=True, min_value=0.0)
    inventory_kind = String(choices=InventoryKind, default=InventoryKind.SINGLE.value)
    stock = Integer(min_value=0, default=1)
    status = String(choices=CardStatus, default=CardStatus.ACTIVE.value)
    is_active = Boolean(default=True)
    listed_at = DateTime()

    @invariant.post
    def single_cards_hold_at_most_one_unit(self):
        if self.inventory_kind == InventoryKind.SINGLE.value and self.stock not in (0, 1):
            raise ValidationError({"stock": ["A single card has a stock of 0 or 1"]})

    @classmethod
    def list_card(cls, name, price, inventory_kind=InventoryKind.SINGLE.value, stock=1, set_name=None, rarity=None):
        kind = InventoryKind(inventory_kind)
        if kind is InventoryKind.SINGLE:
            stock = 1

        now = utcnow()
        card = cls(
            name=name,
            set_name=set_name,
            rarity=rarity,
            price=price,
            inventory_kind=kind.value,
            stock=stock,
            status=CardStatus.ACTIVE.value,
            is_active=True,
            listed_at=now,
        )
        card.raise_(
            CardListed(
                card_id=str(card.id),
                name=name,
                price=price,
                inventory_kind=kind.value,
                stock=stock,
                listed_at=now,
            )
        )
        return card

    @property
    def kind(self) -> InventoryKind:
        return InventoryKind(self.inventory_kind)

    def can_purchase(self) -> bool:
        """Whether the card is sellable at all, ignoring reservations."""
        if not self.is_active:
            return False
        if CardStatus(self.status) in (CardStatus.SOLD, CardStatus.INACTIVE):
            return False
        if self.kind is InventoryKind.BULK:
            return (self.stock or 0) > 0
        return True
