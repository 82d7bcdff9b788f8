"""Stripe payment gateway adapter.

Uses Stripe Checkout for the hosted payment page, ``stripe.Webhook`` for
signature verification and the Refunds API for refunds. Completed-session
events do not embed their line items, so they are fetched with
``list_line_items`` when the event is constructed.
"""

import json

import stripe
import structlog

from storefront.errors import InvalidSignature, PaymentGatewayError
from storefront.gateway.port import (
    ASYNC_PAYMENT_SUCCEEDED,
    CHECKOUT_COMPLETED,
    CheckoutLineItem,
    CheckoutSession,
    PaymentAmounts,
    PaymentEvent,
    PaymentGateway,
    PaymentLineItem,
    RefundResult,
    ShippingOption,
)

logger = structlog.get_logger(__name__)

_EVENTS_WITH_LINE_ITEMS = {CHECKOUT_COMPLETED, ASYNC_PAYMENT_SUCCEEDED}


class StripeGateway(PaymentGateway):
    """Production Stripe gateway adapter."""

    def __init__(
        self,
        api_key: str,
        webhook_secret: str,
        currency: str = "usd",
        shipping_countries: tuple[str, ...] = ("US",),
    ) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.currency = currency
        self.shipping_countries = list(shipping_countries)
        stripe.api_key = api_key

    def create_checkout_session(
        self,
        line_items: list[CheckoutLineItem],
        success_url: str,
        cancel_url: str,
        metadata: dict,
        shipping_options: list[ShippingOption] | None = None,
        customer_email: str | None = None,
    ) -> CheckoutSession:
        params = {
            "mode": "payment",
            "line_items": [self._line_item(line) for line in line_items],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            "automatic_tax": {"enabled": True},
            "billing_address_collection": "required",
            "shipping_address_collection": {"allowed_countries": self.shipping_countries},
        }
        if shipping_options:
            params["shipping_options"] = [self._shipping_option(option) for option in shipping_options]
        if customer_email:
            params["customer_email"] = customer_email

        try:
            session = stripe.checkout.Session.create(**params)
        except stripe.StripeError as exc:
            logger.error("Stripe checkout session creation failed", error=str(exc))
            raise PaymentGatewayError(f"Could not create checkout session: {exc}") from exc

        return CheckoutSession(session_id=session.id, url=session.url)

    def construct_event(self, payload: bytes | str, signature: str) -> PaymentEvent:
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as exc:
            raise InvalidSignature(f"Webhook signature verification failed: {exc}") from exc
        except ValueError as exc:
            raise InvalidSignature("Webhook payload is not valid JSON") from exc

        data = json.loads(payload.decode() if isinstance(payload, bytes) else payload)
        session = data["data"]["object"]
        line_items = ()
        if data["type"] in _EVENTS_WITH_LINE_ITEMS:
            line_items = self._fetch_line_items(session["id"])

        details = session.get("customer_details") or {}
        totals = session.get("total_details") or {}
        shipping = (
            session.get("shipping_details") or (session.get("collected_information") or {}).get("shipping_details") or {}
        )
        address = dict(shipping.get("address") or {})
        if shipping.get("name"):
            address["name"] = shipping["name"]

        return PaymentEvent(
            event_id=data["id"],
            type=data["type"],
            session_id=session.get("id"),
            payment_intent_id=session.get("payment_intent") if isinstance(session.get("payment_intent"), str) else None,
            payment_status=session.get("payment_status"),
            customer_email=details.get("email") or session.get("customer_email"),
            customer_address=address,
            line_items=line_items,
            amounts=PaymentAmounts(
                subtotal_cents=session.get("amount_subtotal") or 0,
                tax_cents=totals.get("amount_tax") or 0,
                shipping_cents=totals.get("amount_shipping") or 0,
                total_cents=session.get("amount_total") or 0,
            ),
            currency=(session.get("currency") or self.currency).lower(),
            metadata=dict(session.get("metadata") or {}),
        )

    def create_refund(
        self,
        payment_intent_id: str,
        amount_cents: int | None = None,
    ) -> RefundResult:
        params = {"payment_intent": payment_intent_id}
        if amount_cents is not None:
            params["amount"] = amount_cents

        try:
            refund = stripe.Refund.create(**params)
        except stripe.StripeError as exc:
            logger.error("Stripe refund failed", payment_intent_id=payment_intent_id, error=str(exc))
            return RefundResult(success=False, gateway_status="failed", failure_reason=str(exc))

        return RefundResult(
            success=refund.status in ("succeeded", "pending"),
            gateway_refund_id=refund.id,
            gateway_status=refund.status,
        )

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _line_item(self, line: CheckoutLineItem) -> dict:
        product_data = {
            "name": line.name,
            "metadata": {"card_id": line.card_id, "inventory_kind": line.inventory_kind},
        }
        if line.description:
            product_data["description"] = line.description
        return {
            "quantity": line.quantity,
            "price_data": {
                "currency": self.currency,
                "unit_amount": line.unit_amount_cents,
                "product_data": product_data,
            },
        }

    def _shipping_option(self, option: ShippingOption) -> dict:
        return {
            "shipping_rate_data": {
                "type": "fixed_amount",
                "display_name": option.label,
                "fixed_amount": {"amount": option.amount_cents, "currency": self.currency},
            }
        }

    def _fetch_line_items(self, session_id: str) -> tuple[PaymentLineItem, ...]:
        try:
            result = stripe.checkout.Session.list_line_items(
                session_id,
                expand=["data.price.product"],
                limit=100,
            )
        except stripe.StripeError as exc:
            raise PaymentGatewayError(f"Could not load line items for {session_id}: {exc}") from exc

        items = []
        for line in result.data:
            quantity = getattr(line, "quantity", None) or 1
            price = getattr(line, "price", None)
            product = getattr(price, "product", None)
            if isinstance(product, str):
                product = None
            unit_amount = getattr(price, "unit_amount", None)
            if unit_amount is None:
                unit_amount = round((getattr(line, "amount_total", None) or 0) / max(1, quantity))
            metadata = getattr(product, "metadata", None)
            items.append(
                PaymentLineItem(
                    card_id=getattr(metadata, "card_id", None) or "",
                    name=getattr(product, "name", None) or getattr(line, "description", None) or "Item",
                    unit_amount_cents=unit_amount,
                    quantity=quantity,
                )
            )
        return tuple(items)
