"""Application tests for payment event settlement."""

from unittest import mock

import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from storefront.catalog import repository as card_repository
from storefront.catalog.card import Card, CardStatus
from storefront.errors import ConcurrentUpdateError
from storefront.gateway.port import (
    ASYNC_PAYMENT_FAILED,
    ASYNC_PAYMENT_SUCCEEDED,
    CHECKOUT_EXPIRED,
)
from storefront.orders.order import Order, OrderStatus
from storefront.reservation.reservation import Reservation, ReservationStatus
from storefront.settlement.ledger import PaymentEventRecord


def _card(card):
    return current_domain.repository_for(Card).get(card.id)


def _orders():
    return current_domain.repository_for(Order)._dao.query.all().items


def _reservation(redirect):
    return current_domain.repository_for(Reservation).get(redirect.reservation_id)


class TestCompletedCheckout:
    def test_single_card_sale(self, list_card, start_checkout, deliver):
        card = list_card(price=25.0)
        redirect = start_checkout((card, 1))

        result = deliver(redirect.session_id, event_id="evt_single")

        assert result["outcome"] == "order_created"
        order = current_domain.repository_for(Order).get(result["order_id"])
        assert order.status == OrderStatus.PAID.value
        assert order.order_number == "KTXZ-00001"
        assert order.items[0].unit_price == 25.0

        sold = _card(card)
        assert sold.status == CardStatus.SOLD.value
        assert sold.is_active is False
        assert sold.stock == 0

        reservation = _reservation(redirect)
        assert reservation.status == ReservationStatus.CONSUMED.value
        assert reservation.order_id == result["order_id"]

    def test_amounts_come_from_the_event(self, list_card, start_checkout, deliver):
        card = list_card(price=10.0, inventory_kind="bulk", stock=5)
        redirect = start_checkout((card, 2))

        result = deliver(redirect.session_id, tax_cents=160)

        order = current_domain.repository_for(Order).get(result["order_id"])
        assert order.amounts.subtotal == 20.0
        assert order.amounts.tax == 1.6
        assert order.amounts.shipping == 8.99
        assert order.amounts.total == 30.59
        assert order.email == "buyer@example.com"
        assert order.payment_intent_id is not None

    def test_unpaid_completion_creates_pending_order_without_stock_change(self, list_card, start_checkout, deliver):
        card = list_card(inventory_kind="bulk", stock=10)
        redirect = start_checkout((card, 2))

        result = deliver(redirect.session_id, payment_status="unpaid")

        order = current_domain.repository_for(Order).get(result["order_id"])
        assert order.status == OrderStatus.PENDING.value
        assert order.paid_at is None
        assert _card(card).stock == 10
        assert _reservation(redirect).status == ReservationStatus.ACTIVE.value

    def test_order_numbers_increase(self, list_card, start_checkout, deliver):
        first_card, second_card = list_card(name="First"), list_card(name="Second")
        first = deliver(start_checkout((first_card, 1), holder_key="guest-a").session_id)
        second = deliver(start_checkout((second_card, 1), holder_key="guest-b").session_id)

        assert first["order_number"] == "KTXZ-00001"
        assert second["order_number"] == "KTXZ-00002"

    def test_stock_is_committed_even_after_the_hold_lapsed(self, list_card, start_checkout, deliver):
        card = list_card(inventory_kind="bulk", stock=3)
        redirect = start_checkout((card, 1))
        reservation = _reservation(redirect)
        reservation.cancel("abandoned")
        current_domain.repository_for(Reservation).add(reservation)

        deliver(redirect.session_id)

        assert _card(card).stock == 2

    def test_event_without_email_is_rejected(self, list_card, start_checkout, deliver):
        card = list_card()
        redirect = start_checkout((card, 1))

        with pytest.raises(ValidationError):
            deliver(redirect.session_id, customer_email=None)

        assert _card(card).stock == 1


class TestIdempotentSettlement:
    def test_redelivered_event_settles_once(self, list_card, start_checkout, deliver):
        card = list_card(inventory_kind="bulk", stock=10)
        redirect = start_checkout((card, 2))

        first = deliver(redirect.session_id, event_id="evt_1")
        assert _card(card).stock == 8
        assert len(_orders()) == 1

        second = deliver(redirect.session_id, event_id="evt_1")
        assert second["outcome"] == "duplicate"
        assert _card(card).stock == 8
        assert len(_orders()) == 1
        assert first["outcome"] == "order_created"

    def test_second_event_for_same_session_is_already_recorded(self, list_card, start_checkout, deliver):
        card = list_card(inventory_kind="bulk", stock=10)
        redirect = start_checkout((card, 2))
        first = deliver(redirect.session_id, event_id="evt_a")

        second = deliver(redirect.session_id, event_id="evt_b")

        assert second["outcome"] == "already_recorded"
        assert second["order_id"] == first["order_id"]
        assert _card(card).stock == 8


class TestFailedSettlement:
    def test_failure_part_way_leaves_nothing_behind(self, list_card, start_checkout, deliver):
        first = list_card(name="Lightning Bolt", price=1.5, inventory_kind="bulk", stock=10)
        second = list_card(name="Counterspell", price=2.0, inventory_kind="bulk", stock=10)
        redirect = start_checkout((first, 2), (second, 1))
        sale_update = card_repository._sale_update

        def fail_on_second(card, quantity):
            if str(card.id) == str(second.id):
                raise ConcurrentUpdateError(f"Could not apply sale to card {card.id}")
            return sale_update(card, quantity)

        with mock.patch.object(card_repository, "_sale_update", side_effect=fail_on_second):
            with pytest.raises(ConcurrentUpdateError):
                deliver(redirect.session_id, event_id="evt_partial")

        assert current_domain.repository_for(PaymentEventRecord).is_claimed("evt_partial") is False
        assert _card(first).stock == 10
        assert _card(second).stock == 10
        assert _orders() == []
        assert _reservation(redirect).status == ReservationStatus.ACTIVE.value

        retried = deliver(redirect.session_id, event_id="evt_partial")

        assert retried["outcome"] == "order_created"
        assert _card(first).stock == 8
        assert _card(second).stock == 9
        assert len(_orders()) == 1
        assert _reservation(redirect).status == ReservationStatus.CONSUMED.value


class TestOtherEventTypes:
    def test_expired_session_releases_the_hold(self, list_card, start_checkout, deliver):
        card = list_card()
        redirect = start_checkout((card, 1))

        result = deliver(redirect.session_id, event_type=CHECKOUT_EXPIRED)

        assert result["outcome"] == "hold_released"
        reservation = _reservation(redirect)
        assert reservation.status == ReservationStatus.CANCELLED.value
        assert reservation.cancel_reason == "session_expired"
        assert _orders() == []

    def test_async_success_pays_pending_order(self, list_card, start_checkout, deliver):
        card = list_card(inventory_kind="bulk", stock=10)
        redirect = start_checkout((card, 3))
        deliver(redirect.session_id, payment_status="unpaid")

        result = deliver(redirect.session_id, event_type=ASYNC_PAYMENT_SUCCEEDED)

        assert result["outcome"] == "order_paid"
        order = current_domain.repository_for(Order).get(result["order_id"])
        assert order.status == OrderStatus.PAID.value
        assert order.paid_at is not None
        assert _card(card).stock == 7
        assert _reservation(redirect).status == ReservationStatus.CONSUMED.value

    def test_async_success_without_prior_order_settles_it(self, list_card, start_checkout, deliver):
        card = list_card()
        redirect = start_checkout((card, 1))

        result = deliver(redirect.session_id, event_type=ASYNC_PAYMENT_SUCCEEDED)

        assert result["outcome"] == "order_created"
        assert _card(card).status == CardStatus.SOLD.value

    def test_async_failure_cancels_pending_order_and_hold(self, list_card, start_checkout, deliver):
        card = list_card(inventory_kind="bulk", stock=10)
        redirect = start_checkout((card, 1))
        created = deliver(redirect.session_id, payment_status="unpaid")

        deliver(redirect.session_id, event_type=ASYNC_PAYMENT_FAILED, payment_status="unpaid")

        order = current_domain.repository_for(Order).get(created["order_id"])
        assert order.status == OrderStatus.CANCELLED.value
        assert _reservation(redirect).cancel_reason == "payment_failed"
        assert _card(card).stock == 10

    def test_unknown_event_type_is_ignored(self, list_card, start_checkout, deliver):
        card = list_card()
        redirect = start_checkout((card, 1))

        result = deliver(redirect.session_id, event_type="payment_intent.created")

        assert result["outcome"] == "ignored"
        assert _orders() == []
        assert _reservation(redirect).status == ReservationStatus.ACTIVE.value
