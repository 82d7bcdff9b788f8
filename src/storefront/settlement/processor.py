"""Payment event processing: turns verified provider webhooks into orders.

    claim event id ─ already claimed → duplicate, nothing to do
        checkout.session.completed         → order created (paid or pending)
        checkout.session.async_payment_succeeded → pending order marked paid
        checkout.session.expired           → hold released
        checkout.session.async_payment_failed    → hold released, pending order cancelled
        anything else                      → ignored

Everything a delivery changes, the ledger claim included, is committed in
one unit of work. A delivery that fails part way leaves no trace and the
provider's retry starts over.

Stock is taken when an order is paid, whatever happened to the reservation
in the meantime. The hold was advisory; this decrement is the real one.
"""

import json
from enum import Enum

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import String, Text
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.gateway.port import (
    ASYNC_PAYMENT_FAILED,
    ASYNC_PAYMENT_SUCCEEDED,
    CHECKOUT_COMPLETED,
    CHECKOUT_EXPIRED,
    PaymentEvent,
)
from storefront.orders.lifecycle import apply_stock_effect
from storefront.orders.numbering import next_order_number
from storefront.orders.order import Order, OrderStatus, StockEffect
from storefront.reservation.reservation import CancellationReason, Reservation
from storefront.settlement.ledger import PaymentEventRecord
from storefront.utils.clock import utcnow
from storefront.utils.money import from_cents

logger = structlog.get_logger(__name__)

_RELEASE_REASONS = {
    CHECKOUT_EXPIRED: CancellationReason.SESSION_EXPIRED,
    ASYNC_PAYMENT_FAILED: CancellationReason.PAYMENT_FAILED,
}


class SettlementOutcome(Enum):
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    ALREADY_RECORDED = "already_recorded"
    ORDER_CREATED = "order_created"
    ORDER_PAID = "order_paid"
    HOLD_RELEASED = "hold_released"


@storefront.command(part_of="Order")
class ProcessPaymentEvent:
    """A verified payment provider event, flattened for processing."""

    event_id = String(required=True, max_length=255)
    event_type = String(required=True, max_length=100)
    session_id = String(max_length=255)
    payment_intent_id = String(max_length=255)
    payment_status = String(max_length=50)
    customer_email = String(max_length=254)
    customer_address = Text()  # JSON object
    line_items = Text()  # JSON: list of {card_id, name, unit_amount_cents, quantity}
    amounts = Text()  # JSON: {subtotal_cents, tax_cents, shipping_cents, total_cents}
    currency = String(max_length=3, default="usd")
    metadata = Text()  # JSON object


def payment_event_command(event: PaymentEvent) -> ProcessPaymentEvent:
    return ProcessPaymentEvent(
        event_id=event.event_id,
        event_type=event.type,
        session_id=event.session_id,
        payment_intent_id=event.payment_intent_id,
        payment_status=event.payment_status,
        customer_email=event.customer_email,
        customer_address=json.dumps(event.customer_address or {}),
        line_items=json.dumps(
            [
                {
                    "card_id": line.card_id,
                    "name": line.name,
                    "unit_amount_cents": line.unit_amount_cents,
                    "quantity": line.quantity,
                }
                for line in event.line_items
            ]
        ),
        amounts=json.dumps(
            {
                "subtotal_cents": event.amounts.subtotal_cents,
                "tax_cents": event.amounts.tax_cents,
                "shipping_cents": event.amounts.shipping_cents,
                "total_cents": event.amounts.total_cents,
            }
        ),
        currency=event.currency,
        metadata=json.dumps(event.metadata or {}),
    )


def _load(raw, default):
    if not raw:
        return default
    return json.loads(raw) if isinstance(raw, str) else raw


def _result(outcome: SettlementOutcome, order: Order | None = None) -> dict:
    return {
        "outcome": outcome.value,
        "order_id": str(order.id) if order else None,
        "order_number": order.order_number if order else None,
    }


@storefront.command_handler(part_of=Order)
class PaymentEventHandler:
    @handle(ProcessPaymentEvent)
    def process_payment_event(self, command):
        ledger = current_domain.repository_for(PaymentEventRecord)
        if not ledger.claim(command.event_id, command.event_type, utcnow()):
            logger.info("Duplicate payment event ignored", event_id=command.event_id, event_type=command.event_type)
            return _result(SettlementOutcome.DUPLICATE)

        if command.event_type == CHECKOUT_COMPLETED:
            return self._settle(command)
        if command.event_type == ASYNC_PAYMENT_SUCCEEDED:
            return self._capture(command)
        if command.event_type in _RELEASE_REASONS:
            return self._release(command)

        logger.info("Payment event type not handled", event_id=command.event_id, event_type=command.event_type)
        return _result(SettlementOutcome.IGNORED)

    # -------------------------------------------------------------------
    # Completed checkout
    # -------------------------------------------------------------------
    def _settle(self, command):
        orders = current_domain.repository_for(Order)
        existing = orders.find_by_payment_session(command.session_id)
        if existing is not None:
            logger.info(
                "Order already recorded for session",
                session_id=command.session_id,
                order_number=existing.order_number,
            )
            return _result(SettlementOutcome.ALREADY_RECORDED, existing)

        if not command.session_id:
            raise ValidationError({"session_id": ["Payment event has no checkout session"]})
        if not command.customer_email:
            raise ValidationError({"customer_email": ["Payment event has no customer email"]})

        lines = [line for line in _load(command.line_items, []) if line.get("card_id")]
        if not lines:
            raise ValidationError({"line_items": ["Payment event has no purchasable line items"]})

        amounts = _load(command.amounts, {})
        metadata = _load(command.metadata, {})
        paid = command.payment_status == "paid"

        order = Order.materialize(
            order_number=next_order_number(),
            email=command.customer_email,
            items_data=[
                {
                    "card_id": line["card_id"],
                    "name": line.get("name") or "Item",
                    "unit_price": from_cents(line.get("unit_amount_cents")),
                    "quantity": int(line.get("quantity") or 1),
                }
                for line in lines
            ],
            amounts={
                "subtotal": from_cents(amounts.get("subtotal_cents")),
                "tax": from_cents(amounts.get("tax_cents")),
                "shipping": from_cents(amounts.get("shipping_cents")),
                "total": from_cents(amounts.get("total_cents")),
            },
            payment_session_id=command.session_id,
            paid=paid,
            payment_intent_id=command.payment_intent_id,
            user_id=metadata.get("user_id"),
            shipping_address=_load(command.customer_address, {}),
            currency=command.currency or "usd",
        )
        orders.add(order)

        if paid:
            apply_stock_effect(order, StockEffect.COMMIT)
            self._consume_hold(command, metadata, order)

        logger.info(
            "Order created from checkout",
            order_id=str(order.id),
            order_number=order.order_number,
            session_id=command.session_id,
            status=order.status,
            items=len(lines),
        )
        return _result(SettlementOutcome.ORDER_CREATED, order)

    # -------------------------------------------------------------------
    # Delayed payment methods
    # -------------------------------------------------------------------
    def _capture(self, command):
        orders = current_domain.repository_for(Order)
        order = orders.find_by_payment_session(command.session_id)
        if order is None:
            return self._settle(command)
        if OrderStatus(order.status) != OrderStatus.PENDING:
            return _result(SettlementOutcome.ALREADY_RECORDED, order)

        effect = order.transition_to(OrderStatus.PAID.value)
        orders.add(order)
        apply_stock_effect(order, effect)
        self._consume_hold(command, _load(command.metadata, {}), order)

        logger.info("Pending order paid", order_id=str(order.id), order_number=order.order_number)
        return _result(SettlementOutcome.ORDER_PAID, order)

    def _release(self, command):
        reason = _RELEASE_REASONS[command.event_type]
        reservation = self._find_hold(command, _load(command.metadata, {}))
        if reservation is not None and reservation.is_active():
            reservation.cancel(reason.value)
            current_domain.repository_for(Reservation).add(reservation)
            logger.info("Reservation released", reservation_id=str(reservation.id), reason=reason.value)

        order = None
        if command.event_type == ASYNC_PAYMENT_FAILED:
            orders = current_domain.repository_for(Order)
            order = orders.find_by_payment_session(command.session_id)
            if order is not None and OrderStatus(order.status) == OrderStatus.PENDING:
                order.transition_to(OrderStatus.CANCELLED.value)
                orders.add(order)
                logger.info("Pending order cancelled after failed payment", order_id=str(order.id))

        return _result(SettlementOutcome.HOLD_RELEASED, order)

    # -------------------------------------------------------------------
    # Reservation bookkeeping
    # -------------------------------------------------------------------
    def _find_hold(self, command, metadata) -> Reservation | None:
        repo = current_domain.repository_for(Reservation)
        reservation_id = metadata.get("reservation_id")
        if reservation_id:
            found = repo.find(reservation_id)
            if found is not None:
                return found
        if command.session_id:
            return repo.find_by_payment_session(command.session_id)
        return None

    def _consume_hold(self, command, metadata, order):
        reservation = self._find_hold(command, metadata)
        if reservation is None or not reservation.is_active():
            logger.info(
                "No active reservation to consume",
                order_id=str(order.id),
                session_id=command.session_id,
            )
            return
        reservation.consume(order.id)
        current_domain.repository_for(Reservation).add(reservation)
