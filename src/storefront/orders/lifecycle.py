"""Order lifecycle: admin status changes, tracking and refunds.

Every status change reports a ``StockEffect`` which is applied to the catalog
inside the same unit of work, so an order's status and its stock movement are
committed together.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from storefront.catalog.card import Card
from storefront.domain import storefront
from storefront.errors import PaymentGatewayError
from storefront.gateway import get_gateway
from storefront.orders.order import Order, OrderStatus, StockEffect

logger = structlog.get_logger(__name__)


@storefront.command(part_of="Order")
class UpdateOrderStatus:
    order_id = Identifier(required=True)
    status = String(required=True, choices=OrderStatus)
    tracking_number = String(max_length=100)
    carrier = String(max_length=50)


@storefront.command(part_of="Order")
class UpdateTracking:
    order_id = Identifier(required=True)
    tracking_number = String(required=True, max_length=100)
    carrier = String(required=True, max_length=50)


@storefront.command(part_of="Order")
class RefundOrder:
    """Refund an order through the payment provider. Omit ``amount`` for a full refund."""

    order_id = Identifier(required=True)
    amount = Float(min_value=0.0)


def apply_stock_effect(order: Order, effect: StockEffect) -> None:
    """Commit or restore the stock of every item on ``order``."""
    if effect is StockEffect.NONE:
        return

    cards = current_domain.repository_for(Card)
    for item in order.items:
        if effect is StockEffect.COMMIT:
            applied = cards.commit_sale(str(item.card_id), item.quantity)
        else:
            applied = cards.restore_stock(str(item.card_id), item.quantity)
        if not applied:
            logger.warning(
                "Card missing, stock not adjusted",
                order_id=str(order.id),
                card_id=str(item.card_id),
                effect=effect.value,
            )


@storefront.command_handler(part_of=Order)
class OrderLifecycleHandler:
    @handle(UpdateOrderStatus)
    def update_order_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        previous = order.status

        if command.tracking_number and command.carrier:
            order.record_tracking(command.tracking_number, command.carrier)
        effect = order.transition_to(command.status)
        repo.add(order)
        apply_stock_effect(order, effect)

        logger.info(
            "Order status updated",
            order_id=str(order.id),
            order_number=order.order_number,
            previous_status=previous,
            status=order.status,
            stock_effect=effect.value,
        )
        return order.status

    @handle(UpdateTracking)
    def update_tracking(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.record_tracking(command.tracking_number, command.carrier)
        repo.add(order)

    @handle(RefundOrder)
    def refund_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        amount_cents = order.refund_cents(command.amount)
        if not order.payment_intent_id:
            raise ValidationError({"payment_intent_id": ["Order has no captured payment to refund"]})

        result = get_gateway().create_refund(order.payment_intent_id, amount_cents)
        if not result.success:
            logger.error("Refund rejected by payment provider", order_id=str(order.id), reason=result.failure_reason)
            raise PaymentGatewayError(f"Refund failed: {result.failure_reason}")

        effect = order.refund(command.amount)
        repo.add(order)
        apply_stock_effect(order, effect)

        logger.info(
            "Order refunded",
            order_id=str(order.id),
            refund_id=result.gateway_refund_id,
            full_refund=order.status == OrderStatus.REFUNDED.value,
            stock_effect=effect.value,
        )
        return result.gateway_refund_id
