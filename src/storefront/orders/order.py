"""Order aggregate (CQRS): a settled checkout session.

Items are snapshots of name, price and quantity taken from the payment
provider's line items, so historical orders read the same however the card
changes later.

State Machine:
    PENDING → PAID → FULFILLED
    PENDING | PAID | FULFILLED → CANCELLED | REFUNDED
    CANCELLED, REFUNDED: terminal

Stock is taken out of the catalog when an order becomes PAID and put back
when a PAID or FULFILLED order is cancelled or refunded. The transition
methods report which of those the caller must apply as a ``StockEffect``.
"""

from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import (
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from storefront.domain import storefront
from storefront.orders.events import (
    OrderCancelled,
    OrderFulfilled,
    OrderPaid,
    OrderPlaced,
    OrderRefunded,
    OrderTrackingUpdated,
)
from storefront.utils.clock import utcnow
from storefront.utils.money import from_cents, to_cents


class OrderStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class StockEffect(Enum):
    NONE = "none"
    COMMIT = "commit"
    RESTORE = "restore"


# State machine transition map
_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PAID, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.PAID: {OrderStatus.FULFILLED, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.FULFILLED: {OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: set(),  # Terminal
    OrderStatus.REFUNDED: set(),  # Terminal
}

# States in which the order's items have been taken out of stock
STOCK_COMMITTED_STATES = {OrderStatus.PAID, OrderStatus.FULFILLED}


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@storefront.value_object(part_of="Order")
class OrderAmounts:
    """Money breakdown in dollars, as charged by the provider."""

    subtotal = Float(default=0.0)
    tax = Float(default=0.0)
    shipping = Float(default=0.0)
    total = Float(default=0.0)

    @property
    def total_cents(self) -> int:
        return to_cents(self.total)


@storefront.value_object(part_of="Order")
class ShippingAddress:
    name = String(max_length=255)
    line1 = String(max_length=255)
    line2 = String(max_length=255)
    city = String(max_length=100)
    state = String(max_length=100)
    postal_code = String(max_length=20)
    country = String(max_length=2, default="US")


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@storefront.entity(part_of="Order")
class OrderItem:
    card_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    unit_price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------
@storefront.aggregate
class Order:
    order_number = String(required=True, max_length=20, unique=True)
    user_id = String(max_length=255)
    email = String(required=True, max_length=254)
    items = HasMany(OrderItem)
    amounts = ValueObject(OrderAmounts)
    currency = String(max_length=3, default="usd")
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    payment_session_id = String(required=True, max_length=255, unique=True)
    payment_intent_id = String(max_length=255)
    shipping_address = ValueObject(ShippingAddress)
    tracking_number = String(max_length=100)
    carrier = String(max_length=50)
    notes = Text()
    refunded_amount = Float(default=0.0)
    placed_at = DateTime()
    paid_at = DateTime()
    fulfilled_at = DateTime()
    cancelled_at = DateTime()
    refunded_at = DateTime()

    @invariant.post
    def order_must_have_items(self):
        if not self.items:
            raise ValidationError({"items": ["An order must contain at least one item"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def materialize(
        cls,
        order_number,
        email,
        items_data,
        amounts,
        payment_session_id,
        paid,
        payment_intent_id=None,
        user_id=None,
        shipping_address=None,
        currency="usd",
    ):
        """Create an order for a completed checkout session.

        Args:
            items_data: list of dicts with card_id, name, unit_price, quantity.
            amounts: dict with subtotal, tax, shipping, total (dollars).
            paid: whether the provider reported the payment as captured.
        """
        now = utcnow()
        status = OrderStatus.PAID if paid else OrderStatus.PENDING
        address = None
        if shipping_address:
            address = ShippingAddress(
                **{key: shipping_address.get(key) for key in ("name", "line1", "line2", "city", "state", "postal_code")},
                country=shipping_address.get("country") or "US",
            )

        order = cls(
            order_number=order_number,
            user_id=user_id or None,
            email=email.strip().lower(),
            items=[
                OrderItem(
                    card_id=item["card_id"],
                    name=item["name"],
                    unit_price=item["unit_price"],
                    quantity=item["quantity"],
                )
                for item in items_data
            ],
            amounts=OrderAmounts(**amounts),
            currency=currency,
            status=status.value,
            payment_session_id=payment_session_id,
            payment_intent_id=payment_intent_id,
            shipping_address=address,
            notes=("Paid via checkout. Awaiting fulfillment." if paid else "Checkout completed, payment not captured yet."),
            placed_at=now,
            paid_at=now if paid else None,
        )

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order_number,
                payment_session_id=payment_session_id,
                email=order.email,
                status=status.value,
                total=order.amounts.total,
                placed_at=now,
            )
        )
        if paid:
            order._raise_paid(now)
        return order

    # -------------------------------------------------------------------
    # Status transitions
    # -------------------------------------------------------------------
    def transition_to(self, new_status) -> StockEffect:
        """Move the order to ``new_status``.

        Repeating the current non-terminal status is a no-op. Each lifecycle
        timestamp is written only the first time its status is reached.
        """
        current = OrderStatus(self.status)
        target = OrderStatus(new_status)

        if target == current and _VALID_TRANSITIONS[current]:
            return StockEffect.NONE
        if target not in _VALID_TRANSITIONS[current]:
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target.value}"]})

        now = utcnow()
        self.status = target.value
        effect = StockEffect.NONE

        if target == OrderStatus.PAID:
            self.paid_at = self.paid_at or now
            effect = StockEffect.COMMIT
            self._raise_paid(now)
        elif target == OrderStatus.FULFILLED:
            self.fulfilled_at = self.fulfilled_at or now
            self.paid_at = self.paid_at or now
            self.raise_(
                OrderFulfilled(
                    order_id=str(self.id),
                    order_number=self.order_number,
                    email=self.email,
                    tracking_number=self.tracking_number,
                    carrier=self.carrier,
                    fulfilled_at=self.fulfilled_at,
                )
            )
        elif target == OrderStatus.CANCELLED:
            self.cancelled_at = self.cancelled_at or now
            if current in STOCK_COMMITTED_STATES:
                effect = StockEffect.RESTORE
            self.raise_(
                OrderCancelled(
                    order_id=str(self.id),
                    previous_status=current.value,
                    restock=effect == StockEffect.RESTORE,
                    cancelled_at=self.cancelled_at,
                )
            )
        elif target == OrderStatus.REFUNDED:
            self.refunded_at = self.refunded_at or now
            self.refunded_amount = self.amounts.total
            if current in STOCK_COMMITTED_STATES:
                effect = StockEffect.RESTORE
            self.raise_(
                OrderRefunded(
                    order_id=str(self.id),
                    amount=self.amounts.total,
                    full_refund=True,
                    previous_status=current.value,
                    restock=effect == StockEffect.RESTORE,
                    refunded_at=self.refunded_at,
                )
            )

        return effect

    def _raise_paid(self, paid_at):
        self.raise_(
            OrderPaid(
                order_id=str(self.id),
                order_number=self.order_number,
                email=self.email,
                total=self.amounts.total,
                paid_at=paid_at,
            )
        )

    # -------------------------------------------------------------------
    # Refunds
    # -------------------------------------------------------------------
    def refund_cents(self, amount=None) -> int | None:
        """Validate a refund request and return it in cents (None for a full refund)."""
        status = OrderStatus(self.status)
        if status == OrderStatus.REFUNDED:
            raise ValidationError({"status": ["Order is already refunded"]})
        if status == OrderStatus.CANCELLED:
            raise ValidationError({"status": ["Cannot refund a cancelled order"]})
        if amount is None:
            return None

        cents = to_cents(amount)
        if cents <= 0:
            raise ValidationError({"amount": ["Refund amount must be positive"]})
        if cents > self.refundable_cents:
            raise ValidationError({"amount": ["Refund amount exceeds the amount still refundable"]})
        return cents

    @property
    def refundable_cents(self) -> int:
        """What is left to refund after earlier partial refunds."""
        return max(0, self.amounts.total_cents - to_cents(self.refunded_amount))

    def refund(self, amount=None) -> StockEffect:
        """Record a refund. One that covers everything still refundable refunds the order in full."""
        cents = self.refund_cents(amount)
        if cents is None or cents >= self.refundable_cents:
            return self.transition_to(OrderStatus.REFUNDED.value)

        self.refunded_amount = from_cents(to_cents(self.refunded_amount) + cents)
        self.raise_(
            OrderRefunded(
                order_id=str(self.id),
                amount=from_cents(cents),
                full_refund=False,
                previous_status=self.status,
                restock=False,
                refunded_at=utcnow(),
            )
        )
        return StockEffect.NONE

    # -------------------------------------------------------------------
    # Fulfillment details
    # -------------------------------------------------------------------
    def record_tracking(self, tracking_number, carrier):
        if OrderStatus(self.status) in (OrderStatus.CANCELLED, OrderStatus.REFUNDED):
            raise ValidationError({"status": [f"Cannot add tracking to a {self.status} order"]})
        self.tracking_number = tracking_number
        self.carrier = carrier
        self.raise_(
            OrderTrackingUpdated(
                order_id=str(self.id),
                tracking_number=tracking_number,
                carrier=carrier,
            )
        )
