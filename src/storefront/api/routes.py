"""FastAPI routes for the storefront: checkout, cards, payment events, orders
and scheduled maintenance."""

import hmac
import os

import structlog
from fastapi import APIRouter, Header, HTTPException, Request
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from storefront.api.schemas import (
    AvailabilityResponse,
    BeginCheckoutRequest,
    CancelledResponse,
    CardIdResponse,
    ConfigureGatewayRequest,
    ExpiredResponse,
    GatewayConfigResponse,
    ListCardRequest,
    OrderStatusResponse,
    PaymentEventResponse,
    PurgeResponse,
    RefundOrderRequest,
    RefundResponse,
    StatusResponse,
    TransferReservationsRequest,
    TransferredResponse,
    UpdateOrderStatusRequest,
    UpdateTrackingRequest,
)
from storefront.catalog.listing import ListCard
from storefront.checkout.orchestrator import CartLine, Holder, begin_checkout
from storefront.config import get_settings
from storefront.errors import StorefrontError
from storefront.gateway import get_gateway
from storefront.gateway.fake_adapter import FakeGateway
from storefront.orders.lifecycle import RefundOrder, UpdateOrderStatus, UpdateTracking
from storefront.orders.order import Order
from storefront.reservation.availability import availability_for
from storefront.reservation.expiry import ExpireReservations
from storefront.reservation.holding import CancelReservation, TransferGuestReservations
from storefront.reservation.reservation import CancellationReason
from storefront.reservation.retention import PurgeReservations
from storefront.settlement.ledger import PruneLedger
from storefront.settlement.processor import payment_event_command

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Checkout Router
# ---------------------------------------------------------------------------
checkout_router = APIRouter(prefix="/checkout", tags=["checkout"])


@checkout_router.post("", status_code=303)
async def begin_checkout_session(body: BeginCheckoutRequest):
    """Hold the cart and redirect (303) to the hosted payment page."""
    holder = Holder.resolve(user_id=body.user_id, guest_cart_id=body.guest_cart_id)
    cart = [CartLine(card_id=line.card_id, quantity=line.quantity) for line in body.items]
    begin_checkout(holder, cart, customer_email=body.customer_email)


@checkout_router.post("/reservations/{reservation_id}/cancel", response_model=CancelledResponse)
async def cancel_reservation(reservation_id: str) -> CancelledResponse:
    """Release a hold when the shopper backs out of the payment page."""
    command = CancelReservation(
        reservation_id=reservation_id,
        reason=CancellationReason.ABANDONED.value,
    )
    cancelled = current_domain.process(command, asynchronous=False)
    return CancelledResponse(cancelled=bool(cancelled))


@checkout_router.post("/reservations/transfer", response_model=TransferredResponse)
async def transfer_reservations(body: TransferReservationsRequest) -> TransferredResponse:
    """Move a guest's hold to the account they just signed in to."""
    command = TransferGuestReservations(guest_key=body.guest_cart_id, user_id=body.user_id)
    transferred = current_domain.process(command, asynchronous=False)
    return TransferredResponse(transferred=transferred or 0)


@checkout_router.post("/gateway/configure", response_model=GatewayConfigResponse)
async def configure_gateway(body: ConfigureGatewayRequest) -> GatewayConfigResponse:
    """Configure the FakeGateway behavior (non-production only)."""
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail="Gateway configuration not available in production")

    gateway = get_gateway()
    if not isinstance(gateway, FakeGateway):
        raise HTTPException(status_code=400, detail="Gateway configuration only available for FakeGateway")

    gateway.configure(should_succeed=body.should_succeed, failure_reason=body.failure_reason)
    return GatewayConfigResponse(
        gateway=type(gateway).__name__,
        should_succeed=gateway.should_succeed,
        failure_reason=gateway.failure_reason,
    )


# ---------------------------------------------------------------------------
# Card Router
# ---------------------------------------------------------------------------
card_router = APIRouter(prefix="/cards", tags=["cards"])


@card_router.post("", status_code=201, response_model=CardIdResponse)
async def list_card(body: ListCardRequest) -> CardIdResponse:
    command = ListCard(
        name=body.name,
        price=body.price,
        inventory_kind=body.inventory_kind,
        stock=body.stock,
        set_name=body.set_name,
        rarity=body.rarity,
    )
    card_id = current_domain.process(command, asynchronous=False)
    return CardIdResponse(card_id=card_id)


@card_router.get("/{card_id}/availability", response_model=AvailabilityResponse)
async def card_availability(card_id: str) -> AvailabilityResponse:
    availability = availability_for([card_id]).get(card_id)
    if availability is None:
        raise HTTPException(status_code=404, detail=f"Card {card_id} not found")
    return AvailabilityResponse(
        card_id=availability.card_id,
        inventory_kind=availability.inventory_kind,
        stock=availability.stock,
        reserved=availability.reserved,
        available=availability.effective_available,
        purchasable=availability.purchasable,
    )


# ---------------------------------------------------------------------------
# Payment Event Router
# ---------------------------------------------------------------------------
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@webhook_router.post("/payments", response_model=PaymentEventResponse)
async def receive_payment_event(request: Request, stripe_signature: str = Header(default="")) -> PaymentEventResponse:
    """Verify and settle a payment provider event.

    Signature failures answer 400 and are never retried. Processing failures
    answer 500 so the provider redelivers.
    """
    payload = await request.body()
    event = get_gateway().construct_event(payload, stripe_signature)

    try:
        result = current_domain.process(payment_event_command(event), asynchronous=False)
    except (ValidationError, StorefrontError) as exc:
        logger.error(
            "Payment event processing failed",
            event_id=event.event_id,
            event_type=event.type,
            error=str(exc),
        )
        raise HTTPException(status_code=500, detail="Payment event processing failed") from exc

    return PaymentEventResponse(**result)


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("/{order_id}/status", response_model=OrderStatusResponse)
async def update_order_status(order_id: str, body: UpdateOrderStatusRequest) -> OrderStatusResponse:
    command = UpdateOrderStatus(
        order_id=order_id,
        status=body.status,
        tracking_number=body.tracking_number,
        carrier=body.carrier,
    )
    status = current_domain.process(command, asynchronous=False)
    return OrderStatusResponse(order_id=order_id, status=status)


@order_router.post("/{order_id}/tracking", response_model=StatusResponse)
async def update_tracking(order_id: str, body: UpdateTrackingRequest) -> StatusResponse:
    command = UpdateTracking(
        order_id=order_id,
        tracking_number=body.tracking_number,
        carrier=body.carrier,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse(status="tracking_updated")


@order_router.post("/{order_id}/refund", response_model=RefundResponse)
async def refund_order(order_id: str, body: RefundOrderRequest) -> RefundResponse:
    """Refund through the payment provider. Omit ``amount`` for a full refund."""
    command = RefundOrder(order_id=order_id, amount=body.amount)
    refund_id = current_domain.process(command, asynchronous=False)
    order = current_domain.repository_for(Order).get(order_id)
    return RefundResponse(order_id=order_id, status=order.status, refund_id=refund_id)


# ---------------------------------------------------------------------------
# Maintenance Router
# ---------------------------------------------------------------------------
maintenance_router = APIRouter(prefix="/maintenance", tags=["maintenance"])


def _require_cron_secret(authorization: str) -> None:
    secret = get_settings().cron_secret
    if not secret:
        if os.environ.get("PROTEAN_ENV") == "production":
            raise HTTPException(status_code=403, detail="Maintenance endpoints are disabled")
        return
    if not hmac.compare_digest(authorization or "", f"Bearer {secret}"):
        raise HTTPException(status_code=401, detail="Invalid maintenance credentials")


@maintenance_router.post("/reservations/expire", response_model=ExpiredResponse)
async def expire_reservations(authorization: str = Header(default="")) -> ExpiredResponse:
    """Close lapsed holds. Meant to be called by a scheduler every minute or so."""
    _require_cron_secret(authorization)
    expired = current_domain.process(ExpireReservations(), asynchronous=False)
    return ExpiredResponse(expired=expired or 0)


@maintenance_router.post("/purge", response_model=PurgeResponse)
async def purge(authorization: str = Header(default="")) -> PurgeResponse:
    """Delete closed holds and payment event records past their retention."""
    _require_cron_secret(authorization)
    purged = current_domain.process(PurgeReservations(), asynchronous=False)
    pruned = current_domain.process(PruneLedger(), asynchronous=False)
    return PurgeResponse(reservations_purged=purged or 0, ledger_pruned=pruned or 0)
