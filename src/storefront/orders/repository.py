"""Repository for the Order aggregate."""

from storefront.domain import storefront
from storefront.orders.order import Order


@storefront.repository(part_of=Order)
class OrderRepository:
    def find_by_payment_session(self, payment_session_id: str) -> Order | None:
        return self._dao.query.filter(payment_session_id=payment_session_id).all().first

    def find_by_number(self, order_number: str) -> Order | None:
        return self._dao.query.filter(order_number=order_number).all().first
