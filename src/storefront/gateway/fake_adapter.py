"""Configurable fake payment gateway for development and testing.

This adapter simulates a hosted-checkout provider without any external calls.
It can be configured at runtime to succeed or fail, making it useful for:
- Manual API testing via /checkout/gateway/configure
- Automated tests with predictable outcomes
- Development without real gateway credentials

Webhook payloads are signed the way Stripe signs them (``t=<ts>,v1=<hmac>``
over ``"<ts>.<payload>"`` with the shared secret), so signature handling is
exercised for real.
"""

import hashlib
import hmac
import json
import time
from uuid import uuid4

from storefront.errors import InvalidSignature, PaymentGatewayError
from storefront.gateway.port import (
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

SIGNATURE_TOLERANCE_SECONDS = 300


def compute_signature(secret: str, payload: str, timestamp: int) -> str:
    signed = f"{timestamp}.{payload}".encode()
    return hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()


def _parse_signature_header(header: str) -> tuple[int, list[str]]:
    timestamp = None
    signatures = []
    for part in (header or "").split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError as exc:
                raise InvalidSignature("Malformed signature timestamp") from exc
        elif key == "v1":
            signatures.append(value)
    if timestamp is None or not signatures:
        raise InvalidSignature("Missing signature components")
    return timestamp, signatures


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self, webhook_secret: str = "whsec_test") -> None:
        self.webhook_secret = webhook_secret
        self.should_succeed: bool = True
        self.failure_reason: str = "Gateway unavailable"
        self.calls: list[dict] = []
        self.sessions: dict[str, dict] = {}

    def configure(self, should_succeed: bool, failure_reason: str = "Gateway unavailable") -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    # -------------------------------------------------------------------
    # Port implementation
    # -------------------------------------------------------------------
    def create_checkout_session(
        self,
        line_items: list[CheckoutLineItem],
        success_url: str,
        cancel_url: str,
        metadata: dict,
        shipping_options: list[ShippingOption] | None = None,
        customer_email: str | None = None,
    ) -> CheckoutSession:
        self.calls.append(
            {
                "method": "create_checkout_session",
                "line_items": list(line_items),
                "success_url": success_url,
                "cancel_url": cancel_url,
                "metadata": dict(metadata),
                "shipping_options": list(shipping_options or []),
                "customer_email": customer_email,
            }
        )
        if not self.should_succeed:
            raise PaymentGatewayError(self.failure_reason)

        session_id = f"cs_test_{uuid4().hex[:16]}"
        self.sessions[session_id] = {
            "line_items": list(line_items),
            "metadata": dict(metadata),
            "shipping_cents": shipping_options[0].amount_cents if shipping_options else 0,
            "customer_email": customer_email,
        }
        return CheckoutSession(session_id=session_id, url=f"https://checkout.fake/pay/{session_id}")

    def construct_event(self, payload: bytes | str, signature: str) -> PaymentEvent:
        if isinstance(payload, bytes):
            payload = payload.decode()

        timestamp, candidates = _parse_signature_header(signature)
        expected = compute_signature(self.webhook_secret, payload, timestamp)
        if not any(hmac.compare_digest(expected, candidate) for candidate in candidates):
            raise InvalidSignature("No signatures found matching the expected signature for payload")
        if abs(time.time() - timestamp) > SIGNATURE_TOLERANCE_SECONDS:
            raise InvalidSignature("Timestamp outside the tolerance zone")

        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise InvalidSignature("Payload is not valid JSON") from exc
        return _to_payment_event(data)

    def create_refund(
        self,
        payment_intent_id: str,
        amount_cents: int | None = None,
    ) -> RefundResult:
        self.calls.append(
            {
                "method": "create_refund",
                "payment_intent_id": payment_intent_id,
                "amount_cents": amount_cents,
            }
        )

        if self.should_succeed:
            return RefundResult(
                success=True,
                gateway_refund_id=f"re_fake_{uuid4().hex[:12]}",
                gateway_status="succeeded",
            )
        return RefundResult(
            success=False,
            gateway_status="failed",
            failure_reason=self.failure_reason,
        )

    # -------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------
    def sign(self, payload: str, timestamp: int | None = None) -> str:
        """Build a signature header for ``payload`` with the shared secret."""
        timestamp = int(time.time()) if timestamp is None else timestamp
        return f"t={timestamp},v1={compute_signature(self.webhook_secret, payload, timestamp)}"

    def session_event(
        self,
        session_id: str,
        event_type: str = CHECKOUT_COMPLETED,
        event_id: str | None = None,
        payment_status: str = "paid",
        customer_email: str | None = "buyer@example.com",
        tax_cents: int = 0,
    ) -> tuple[str, str]:
        """Return a signed ``(payload, signature)`` webhook for a session this gateway created."""
        session = self.sessions[session_id]
        lines = [
            {
                "card_id": line.card_id,
                "name": line.name,
                "unit_amount": line.unit_amount_cents,
                "quantity": line.quantity,
            }
            for line in session["line_items"]
        ]
        subtotal = sum(line["unit_amount"] * line["quantity"] for line in lines)
        shipping = session["shipping_cents"]
        body = {
            "id": event_id or f"evt_{uuid4().hex[:16]}",
            "type": event_type,
            "data": {
                "object": {
                    "id": session_id,
                    "payment_intent": f"pi_fake_{session_id[-8:]}",
                    "payment_status": payment_status,
                    "customer_email": customer_email or session["customer_email"],
                    "shipping_address": {"name": "Card Collector", "line1": "1 Vault Way", "country": "US"},
                    "line_items": lines,
                    "amount_subtotal": subtotal,
                    "amount_tax": tax_cents,
                    "amount_shipping": shipping,
                    "amount_total": subtotal + tax_cents + shipping,
                    "currency": "usd",
                    "metadata": session["metadata"],
                }
            },
        }
        payload = json.dumps(body)
        return payload, self.sign(payload)


def _to_payment_event(data: dict) -> PaymentEvent:
    obj = data.get("data", {}).get("object", {})
    line_items = tuple(
        PaymentLineItem(
            card_id=str(line.get("card_id") or ""),
            name=line.get("name") or "Item",
            unit_amount_cents=int(line.get("unit_amount") or 0),
            quantity=int(line.get("quantity") or 1),
        )
        for line in obj.get("line_items", [])
    )
    return PaymentEvent(
        event_id=data["id"],
        type=data["type"],
        session_id=obj.get("id"),
        payment_intent_id=obj.get("payment_intent"),
        payment_status=obj.get("payment_status"),
        customer_email=obj.get("customer_email"),
        customer_address=obj.get("shipping_address") or {},
        line_items=line_items,
        amounts=PaymentAmounts(
            subtotal_cents=int(obj.get("amount_subtotal") or 0),
            tax_cents=int(obj.get("amount_tax") or 0),
            shipping_cents=int(obj.get("amount_shipping") or 0),
            total_cents=int(obj.get("amount_total") or 0),
        ),
        currency=(obj.get("currency") or "usd").lower(),
        metadata=obj.get("metadata") or {},
    )
