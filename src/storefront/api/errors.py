"""HTTP mapping for storefront exceptions.

Availability failures come back as 409 with a stable ``error`` code so the
storefront can send the shopper back to the cart with a precise message.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from storefront.errors import (
    AvailabilityError,
    ConcurrentUpdateError,
    InvalidSignature,
    PaymentGatewayError,
)

logger = structlog.get_logger(__name__)


async def _availability_error(request: Request, exc: AvailabilityError) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={"error": exc.code, "detail": exc.message, "card_id": exc.card_id},
    )


async def _invalid_signature(request: Request, exc: InvalidSignature) -> JSONResponse:
    logger.warning("Rejected payment event", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=400, content={"error": exc.code, "detail": exc.message})


async def _payment_gateway_error(request: Request, exc: PaymentGatewayError) -> JSONResponse:
    return JSONResponse(status_code=502, content={"error": exc.code, "detail": exc.message})


async def _concurrent_update(request: Request, exc: ConcurrentUpdateError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"error": exc.code, "detail": exc.message})


def register_storefront_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AvailabilityError, _availability_error)
    app.add_exception_handler(InvalidSignature, _invalid_signature)
    app.add_exception_handler(PaymentGatewayError, _payment_gateway_error)
    app.add_exception_handler(ConcurrentUpdateError, _concurrent_update)
