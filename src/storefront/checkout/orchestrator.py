"""Checkout orchestration: cart → reservation → hosted payment page.

    cart validated → reservation placed → payment session requested
        success: reservation linked to the session, shopper redirected
        failure: reservation cancelled, error re-raised

The hand-off to the payment page is raised as ``CheckoutRedirect``, an HTTP
303 that FastAPI renders as-is. It passes through the failure branch
untouched: redirecting is the success path and the hold must stay active.
Anything else raised after the hold exists cancels it before propagating, so
a failed attempt never leaves an orphaned active reservation behind.
"""

import json
from dataclasses import dataclass

import structlog
from fastapi import HTTPException
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from storefront.catalog.card import Card, InventoryKind
from storefront.config import Settings, get_settings
from storefront.errors import PaymentGatewayError
from storefront.gateway import get_gateway
from storefront.gateway.port import CheckoutLineItem, PaymentGateway, ShippingOption
from storefront.reservation.holding import (
    CancelReservation,
    LinkPaymentSession,
    PlaceReservation,
)
from storefront.reservation.reservation import CancellationReason, HolderType
from storefront.utils.money import to_cents

logger = structlog.get_logger(__name__)


class CheckoutRedirect(HTTPException):
    """Sends the shopper to the hosted payment page (HTTP 303)."""

    def __init__(self, url: str, reservation_id: str, session_id: str):
        super().__init__(status_code=303, detail="Redirecting to payment", headers={"Location": url})
        self.url = url
        self.reservation_id = reservation_id
        self.session_id = session_id


@dataclass(frozen=True)
class CartLine:
    card_id: str
    quantity: int = 1


@dataclass(frozen=True)
class Holder:
    """Who a reservation is held for: a signed-in user or a guest cart."""

    holder_type: str
    holder_key: str

    @classmethod
    def resolve(cls, user_id: str | None = None, guest_cart_id: str | None = None) -> "Holder":
        if user_id:
            return cls(HolderType.USER.value, str(user_id))
        if guest_cart_id:
            return cls(HolderType.GUEST.value, str(guest_cart_id))
        raise ValidationError({"holder": ["A user id or a guest cart id is required"]})


class CheckoutOrchestrator:
    def __init__(self, gateway: PaymentGateway | None = None, settings: Settings | None = None):
        self.gateway = gateway or get_gateway()
        self.settings = settings or get_settings()

    def begin(self, holder: Holder, cart: list[CartLine], customer_email: str | None = None):
        """Hold the cart and redirect to payment. Always ends by raising.

        Raises:
            CheckoutRedirect: the session was created; follow it to pay.
            AvailabilityError: a line cannot be held; nothing was reserved.
        """
        if not cart:
            raise ValidationError({"items": ["Cart is empty"]})

        cards = current_domain.repository_for(Card).find_many(line.card_id for line in cart)
        lines = [self._normalize(line, cards.get(line.card_id)) for line in cart]

        reservation_id = current_domain.process(
            PlaceReservation(
                holder_type=holder.holder_type,
                holder_key=holder.holder_key,
                items=json.dumps([{"card_id": line.card_id, "quantity": line.quantity} for line in lines]),
                hold_minutes=self.settings.hold_duration_minutes,
            ),
            asynchronous=False,
        )

        try:
            session = self.gateway.create_checkout_session(
                line_items=[self._line_item(line, cards[line.card_id]) for line in lines],
                success_url=f"{self.settings.site_url}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{self.settings.site_url}/cart",
                metadata=self._metadata(holder, reservation_id),
                shipping_options=[
                    ShippingOption(label="Standard Shipping", amount_cents=self.settings.standard_shipping_cents),
                    ShippingOption(label="Local Pickup", amount_cents=0),
                ],
                customer_email=customer_email,
            )
            if not session.url:
                raise PaymentGatewayError("Payment provider did not return a checkout URL")

            current_domain.process(
                LinkPaymentSession(reservation_id=reservation_id, payment_session_id=session.session_id),
                asynchronous=False,
            )
            logger.info(
                "Checkout session created",
                reservation_id=reservation_id,
                session_id=session.session_id,
                holder_type=holder.holder_type,
            )
            raise CheckoutRedirect(session.url, reservation_id, session.session_id)
        except CheckoutRedirect:
            raise
        except Exception as exc:
            logger.warning(
                "Checkout failed after reservation, releasing hold",
                reservation_id=reservation_id,
                error=str(exc),
            )
            current_domain.process(
                CancelReservation(
                    reservation_id=reservation_id,
                    reason=CancellationReason.SESSION_FAILED.value,
                ),
                asynchronous=False,
            )
            raise

    @staticmethod
    def _normalize(line: CartLine, card: Card | None) -> CartLine:
        if card is not None and card.kind is InventoryKind.SINGLE and line.quantity != 1:
            return CartLine(card_id=line.card_id, quantity=1)
        return line

    @staticmethod
    def _line_item(line: CartLine, card: Card) -> CheckoutLineItem:
        description = " · ".join(part for part in (card.set_name, card.rarity) if part) or None
        return CheckoutLineItem(
            card_id=str(card.id),
            name=card.name,
            unit_amount_cents=to_cents(card.price),
            quantity=line.quantity,
            inventory_kind=card.inventory_kind,
            description=description,
        )

    @staticmethod
    def _metadata(holder: Holder, reservation_id: str) -> dict:
        metadata = {
            "reservation_id": reservation_id,
            "holder_type": holder.holder_type,
            "holder_key": holder.holder_key,
        }
        if holder.holder_type == HolderType.USER.value:
            metadata["user_id"] = holder.holder_key
        return metadata


def begin_checkout(holder: Holder, cart: list[CartLine], customer_email: str | None = None):
    """Module-level entry point used by the API."""
    CheckoutOrchestrator().begin(holder, cart, customer_email=customer_email)
