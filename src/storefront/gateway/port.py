"""Payment gateway port (abstract interface).

Defines the contract that all payment gateway adapters must implement:
hosted checkout sessions, verified webhook events and refunds. This enables
swapping between FakeGateway (dev/test) and StripeGateway (production)
without changing any domain or application code.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

CHECKOUT_COMPLETED = "checkout.session.completed"
CHECKOUT_EXPIRED = "checkout.session.expired"
ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"
ASYNC_PAYMENT_FAILED = "checkout.session.async_payment_failed"


@dataclass(frozen=True)
class CheckoutLineItem:
    """One priced line on a hosted checkout page."""

    card_id: str
    name: str
    unit_amount_cents: int
    quantity: int
    inventory_kind: str
    description: str | None = None


@dataclass(frozen=True)
class ShippingOption:
    label: str
    amount_cents: int


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    url: str


@dataclass(frozen=True)
class PaymentLineItem:
    """A purchased line as reported back by the provider."""

    card_id: str
    name: str
    unit_amount_cents: int
    quantity: int = 1


@dataclass(frozen=True)
class PaymentAmounts:
    subtotal_cents: int = 0
    tax_cents: int = 0
    shipping_cents: int = 0
    total_cents: int = 0


@dataclass(frozen=True)
class PaymentEvent:
    """A verified payment webhook event, reduced to what settlement needs."""

    event_id: str
    type: str
    session_id: str | None = None
    payment_intent_id: str | None = None
    payment_status: str | None = None
    customer_email: str | None = None
    customer_address: dict = field(default_factory=dict)
    line_items: tuple[PaymentLineItem, ...] = ()
    amounts: PaymentAmounts = field(default_factory=PaymentAmounts)
    currency: str = "usd"
    metadata: dict = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund attempt."""

    success: bool
    gateway_refund_id: str | None = None
    gateway_status: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def create_checkout_session(
        self,
        line_items: list[CheckoutLineItem],
        success_url: str,
        cancel_url: str,
        metadata: dict,
        shipping_options: list[ShippingOption] | None = None,
        customer_email: str | None = None,
    ) -> CheckoutSession:
        """Create a hosted payment page for the given lines."""
        ...

    @abstractmethod
    def construct_event(self, payload: bytes | str, signature: str) -> PaymentEvent:
        """Verify a webhook payload and parse it.

        Raises:
            InvalidSignature: the payload was not signed with the shared secret.
        """
        ...

    @abstractmethod
    def create_refund(
        self,
        payment_intent_id: str,
        amount_cents: int | None = None,
    ) -> RefundResult:
        """Refund a captured payment, in full when ``amount_cents`` is None."""
        ...
