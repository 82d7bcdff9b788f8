"""Pydantic request/response schemas for the storefront API.

These are external contracts, kept separate from the internal Protean
commands.
"""

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------
class CartLineSchema(BaseModel):
    card_id: str = Field(min_length=1)
    quantity: int = Field(default=1, ge=1)


class BeginCheckoutRequest(BaseModel):
    items: list[CartLineSchema] = Field(min_length=1)
    user_id: str | None = None
    guest_cart_id: str | None = None
    customer_email: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "items": [{"card_id": "card-001", "quantity": 1}],
                    "guest_cart_id": "guest-7f3a",
                    "customer_email": "collector@example.com",
                }
            ]
        }
    }


class TransferReservationsRequest(BaseModel):
    guest_cart_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)


class CancelledResponse(BaseModel):
    cancelled: bool


class TransferredResponse(BaseModel):
    transferred: int


class ConfigureGatewayRequest(BaseModel):
    should_succeed: bool = True
    failure_reason: str = "Gateway unavailable"


class GatewayConfigResponse(BaseModel):
    gateway: str
    should_succeed: bool
    failure_reason: str


# ---------------------------------------------------------------------------
# Cards
# ---------------------------------------------------------------------------
class ListCardRequest(BaseModel):
    name: str = Field(min_length=1)
    price: float = Field(gt=0)
    inventory_kind: str = "single"
    stock: int = Field(default=1, ge=0)
    set_name: str | None = None
    rarity: str | None = None


class CardIdResponse(BaseModel):
    card_id: str


class AvailabilityResponse(BaseModel):
    card_id: str
    inventory_kind: str
    stock: int
    reserved: int
    available: int
    purchasable: bool


# ---------------------------------------------------------------------------
# Payment events
# ---------------------------------------------------------------------------
class PaymentEventResponse(BaseModel):
    received: bool = True
    outcome: str
    order_id: str | None = None
    order_number: str | None = None


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class UpdateOrderStatusRequest(BaseModel):
    status: str
    tracking_number: str | None = None
    carrier: str | None = None


class UpdateTrackingRequest(BaseModel):
    tracking_number: str = Field(min_length=1)
    carrier: str = Field(min_length=1)


class RefundOrderRequest(BaseModel):
    amount: float | None = Field(default=None, gt=0)


class OrderStatusResponse(BaseModel):
    order_id: str
    status: str


class RefundResponse(BaseModel):
    order_id: str
    status: str
    refund_id: str | None = None


class StatusResponse(BaseModel):
    status: str


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------
class ExpiredResponse(BaseModel):
    expired: int


class PurgeResponse(BaseModel):
    reservations_purged: int
    ledger_pruned: int
