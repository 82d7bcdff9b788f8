"""Customer emails triggered by order events.

Email is best effort. A failed send is logged and never undoes or blocks the
order change that triggered it.
"""

import structlog
from protean import handle

from storefront.domain import storefront
from storefront.notifications import get_mailer
from storefront.notifications.templates import OrderConfirmedTemplate, OrderShippedTemplate
from storefront.orders.events import OrderFulfilled, OrderPaid
from storefront.orders.order import Order

logger = structlog.get_logger(__name__)


def _deliver(kind: str, to: str, template, context: dict) -> bool:
    content = template.render(context)
    try:
        result = get_mailer().send(to=to, subject=content["subject"], body=content["body"])
    except Exception as exc:
        logger.error("Email dispatch raised", kind=kind, order_number=context.get("order_number"), error=str(exc))
        return False

    if result.get("status") != "sent":
        logger.warning(
            "Email not delivered",
            kind=kind,
            order_number=context.get("order_number"),
            error=result.get("error"),
        )
        return False

    logger.info("Email sent", kind=kind, order_number=context.get("order_number"), message_id=result["message_id"])
    return True


@storefront.event_handler(part_of=Order)
class OrderEmailHandler:
    @handle(OrderPaid)
    def on_order_paid(self, event: OrderPaid) -> None:
        _deliver(
            "order_confirmed",
            event.email,
            OrderConfirmedTemplate,
            {"order_number": event.order_number, "total": event.total},
        )

    @handle(OrderFulfilled)
    def on_order_fulfilled(self, event: OrderFulfilled) -> None:
        if not (event.tracking_number and event.carrier):
            logger.info("Order fulfilled without tracking, no shipping email", order_number=event.order_number)
            return
        _deliver(
            "order_shipped",
            event.email,
            OrderShippedTemplate,
            {
                "order_number": event.order_number,
                "carrier": event.carrier,
                "tracking_number": event.tracking_number,
            },
        )
