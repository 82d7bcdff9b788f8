"""Exceptions raised by the storefront core.

Field and state-machine violations use Protean's ``ValidationError`` like the
rest of the domain. The classes here cover outcomes callers must tell apart:
availability failures carry a stable ``code`` the storefront UI uses to guide
the shopper back to the cart.
"""


class StorefrontError(Exception):
    """Base exception for storefront errors."""

    code = "error"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class AvailabilityError(StorefrontError):
    """A card cannot be held for the requested quantity."""

    def __init__(self, card_id: str, message: str, code: str | None = None):
        super().__init__(message, code)
        self.card_id = card_id


class OutOfStock(AvailabilityError):
    code = "out-of-stock"

    def __init__(self, card_id: str):
        super().__init__(card_id, f"Card {card_id} is out of stock")


class InsufficientStock(AvailabilityError):
    code = "insufficient-stock"

    def __init__(self, card_id: str, requested: int, available: int):
        super().__init__(
            card_id,
            f"Only {available} of card {card_id} available, {requested} requested",
        )
        self.requested = requested
        self.available = available


class AlreadyReserved(AvailabilityError):
    code = "reserved"

    def __init__(self, card_id: str):
        super().__init__(card_id, f"Card {card_id} is held in another checkout")


class CardUnavailable(AvailabilityError):
    """The card is missing, delisted, sold or not sellable at its price."""

    code = "unavailable"


class InvalidSignature(StorefrontError):
    """A payment event failed signature verification."""

    code = "invalid-signature"


class PaymentGatewayError(StorefrontError):
    """The payment provider rejected or failed a request."""

    code = "payment-gateway"


class ConcurrentUpdateError(StorefrontError):
    """A conditional update kept losing to concurrent writers."""

    code = "conflict"
