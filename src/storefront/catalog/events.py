"""Domain events for the Card aggregate."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from storefront.domain import storefront


@storefront.event(part_of="Card")
class CardListed:
    """A card was put up for sale."""

    __version__ = 1

    card_id = Identifier(required=True)
    name = String(required=True)
    price = Float(required=True)
    inventory_kind = String(required=True)
    stock = Integer(required=True)
    listed_at = DateTime(required=True)
