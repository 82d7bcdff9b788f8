"""Domain events for the Order aggregate."""

from protean.fields import Boolean, DateTime, Float, Identifier, String

from storefront.domain import storefront


@storefront.event(part_of="Order")
class OrderPlaced:
    """An order was materialized from a completed checkout session."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    payment_session_id = String(required=True)
    email = String(required=True)
    status = String(required=True)
    total = Float(required=True)
    placed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderPaid:
    """Payment for the order was captured. Triggers the confirmation email."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    email = String(required=True)
    total = Float(required=True)
    paid_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderFulfilled:
    """The order was shipped or handed over. Triggers the shipping email."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    email = String(required=True)
    tracking_number = String()
    carrier = String()
    fulfilled_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderTrackingUpdated:
    __version__ = 1

    order_id = Identifier(required=True)
    tracking_number = String(required=True)
    carrier = String(required=True)


@storefront.event(part_of="Order")
class OrderCancelled:
    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    restock = Boolean(required=True)
    cancelled_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderRefunded:
    """Money went back to the customer, in full or in part."""

    __version__ = 1

    order_id = Identifier(required=True)
    amount = Float(required=True)
    full_refund = Boolean(required=True)
    previous_status = String(required=True)
    restock = Boolean(required=True)
    refunded_at = DateTime(required=True)
