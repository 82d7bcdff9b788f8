"""Domain events for the Reservation aggregate."""

from protean.fields import DateTime, Identifier, String, Text

from storefront.domain import storefront


@storefront.event(part_of="Reservation")
class ReservationPlaced:
    """Stock was put on hold for a checkout attempt."""

    __version__ = 1

    reservation_id = Identifier(required=True)
    holder_type = String(required=True)
    holder_key = String(required=True)
    items = Text(required=True)  # JSON: list of {card_id, quantity}
    expires_at = DateTime(required=True)


@storefront.event(part_of="Reservation")
class ReservationLinked:
    """The hold was tied to the payment session created for it."""

    __version__ = 1

    reservation_id = Identifier(required=True)
    payment_session_id = String(required=True)


@storefront.event(part_of="Reservation")
class ReservationCancelled:
    __version__ = 1

    reservation_id = Identifier(required=True)
    reason = String(required=True)
    cancelled_at = DateTime(required=True)


@storefront.event(part_of="Reservation")
class ReservationConsumed:
    """The checkout completed and the hold became an order."""

    __version__ = 1

    reservation_id = Identifier(required=True)
    order_id = Identifier(required=True)
    consumed_at = DateTime(required=True)
