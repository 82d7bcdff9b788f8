"""Payment gateway factory.

Provides get_gateway() / set_gateway() to swap implementations:
- StripeGateway when STRIPE_SECRET_KEY is configured
- FakeGateway for development and testing otherwise
"""

from storefront.config import get_settings
from storefront.gateway.fake_adapter import FakeGateway
from storefront.gateway.port import PaymentGateway

_current_gateway: PaymentGateway | None = None


def get_gateway() -> PaymentGateway:
    """Return the current payment gateway, building it from settings on first use."""
    global _current_gateway
    if _current_gateway is None:
        settings = get_settings()
        if settings.stripe_api_key:
            from storefront.gateway.stripe_adapter import StripeGateway

            _current_gateway = StripeGateway(
                api_key=settings.stripe_api_key,
                webhook_secret=settings.webhook_secret,
                currency=settings.currency,
                shipping_countries=settings.allowed_shipping_countries,
            )
        else:
            _current_gateway = FakeGateway(webhook_secret=settings.webhook_secret)
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to default gateway."""
    global _current_gateway
    _current_gateway = None
