"""Storefront API package."""

from storefront.api.errors import register_storefront_exception_handlers
from storefront.api.routes import (
    card_router,
    checkout_router,
    maintenance_router,
    order_router,
    webhook_router,
)

__all__ = [
    "card_router",
    "checkout_router",
    "maintenance_router",
    "order_router",
    "webhook_router",
    "register_storefront_exception_handlers",
]
