"""Customer email templates for order milestones."""


class OrderConfirmedTemplate:
    """Sent once an order's payment is captured."""

    @staticmethod
    def render(context: dict) -> dict:
        order_number = context.get("order_number", "N/A")
        total = context.get("total", 0.0)
        return {
            "subject": f"Order {order_number} confirmed",
            "body": (
                f"Thanks for your order! Order {order_number} is confirmed.\n\n"
                f"Order Total: ${total:.2f}\n\n"
                "We'll email you again as soon as your cards ship."
            ),
        }


class OrderShippedTemplate:
    """Sent when an order is fulfilled with tracking details."""

    @staticmethod
    def render(context: dict) -> dict:
        order_number = context.get("order_number", "N/A")
        carrier = context.get("carrier", "the carrier")
        tracking_number = context.get("tracking_number", "N/A")
        return {
            "subject": f"Order {order_number} has shipped",
            "body": (
                f"Good news! Order {order_number} is on its way.\n\n"
                f"Carrier: {carrier}\n"
                f"Tracking Number: {tracking_number}\n\n"
                "Your cards are packed in sleeves and top loaders."
            ),
        }
