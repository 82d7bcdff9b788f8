"""Card listing: command and handler.

The admin back office owns the full catalog; this is the seam it uses to put
a card up for sale.
"""

from protean import handle
from protean.fields import Float, Integer, String
from protean.utils.globals import current_domain

from storefront.catalog.card import Card, InventoryKind
from storefront.domain import storefront


@storefront.command(part_of="Card")
class ListCard:
    name = String(required=True, max_length=255)
    price = Float(required=True, min_value=0.0)
    inventory_kind = String(choices=InventoryKind, default=InventoryKind.SINGLE.value)
    stock = Integer(min_value=0, default=1)
    set_name = String(max_length=255)
    rarity = String(max_length=100)


@storefront.command_handler(part_of=Card)
class ListCardHandler:
    @handle(ListCard)
    def list_card(self, command):
        card = Card.list_card(
            name=command.name,
            price=command.price,
            inventory_kind=command.inventory_kind,
            stock=command.stock if command.stock is not None else 1,
            set_name=command.set_name,
            rarity=command.rarity,
        )
        current_domain.repository_for(Card).add(card)
        return str(card.id)
