"""Application tests for the checkout orchestrator."""

import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from storefront.checkout.orchestrator import CartLine, CheckoutOrchestrator, CheckoutRedirect, Holder
from storefront.config import Settings
from storefront.errors import AlreadyReserved, PaymentGatewayError
from storefront.gateway.fake_adapter import FakeGateway
from storefront.gateway.port import CheckoutSession
from storefront.reservation.reservation import Reservation, ReservationStatus

GUEST = Holder("guest", "guest-cart-1")


def _begin(gateway, cart, holder=GUEST, email="buyer@example.com"):
    orchestrator = CheckoutOrchestrator(gateway=gateway, settings=Settings(site_url="https://cards.test"))
    with pytest.raises(CheckoutRedirect) as exc:
        orchestrator.begin(holder, cart, customer_email=email)
    return exc.value


def _reservations():
    return current_domain.repository_for(Reservation)._dao.query.filter(status="active").all().items


class TestSuccessfulCheckout:
    def test_redirect_is_a_303_to_the_payment_page(self, gateway, list_card):
        card = list_card()
        redirect = _begin(gateway, [CartLine(str(card.id))])

        assert redirect.status_code == 303
        assert redirect.headers["Location"] == redirect.url
        assert redirect.url.startswith("https://checkout.fake/pay/")

    def test_hold_stays_active_and_linked_to_session(self, gateway, list_card):
        card = list_card()
        redirect = _begin(gateway, [CartLine(str(card.id))])

        reservation = current_domain.repository_for(Reservation).get(redirect.reservation_id)
        assert reservation.status == ReservationStatus.ACTIVE.value
        assert reservation.payment_session_id == redirect.session_id

    def test_session_carries_reservation_metadata(self, gateway, list_card):
        card = list_card()
        redirect = _begin(gateway, [CartLine(str(card.id))], holder=Holder("user", "user-7"))

        call = gateway.calls[-1]
        assert call["metadata"] == {
            "reservation_id": redirect.reservation_id,
            "holder_type": "user",
            "holder_key": "user-7",
            "user_id": "user-7",
        }
        assert call["success_url"].startswith("https://cards.test/checkout/success")
        assert call["cancel_url"] == "https://cards.test/cart"
        assert [option.amount_cents for option in call["shipping_options"]] == [899, 0]
        assert call["customer_email"] == "buyer@example.com"

    def test_line_items_are_priced_in_cents(self, gateway, list_card):
        card = list_card(name="Shivan Dragon", price=12.34, inventory_kind="bulk", stock=4)
        _begin(gateway, [CartLine(str(card.id), 2)])

        line = gateway.calls[-1]["line_items"][0]
        assert line.name == "Shivan Dragon"
        assert line.unit_amount_cents == 1234
        assert line.quantity == 2
        assert line.inventory_kind == "bulk"

    def test_single_card_quantity_is_normalized_to_one(self, gateway, list_card):
        card = list_card()
        redirect = _begin(gateway, [CartLine(str(card.id), 3)])

        reservation = current_domain.repository_for(Reservation).get(redirect.reservation_id)
        assert reservation.lines == [(str(card.id), 1)]
        assert gateway.calls[-1]["line_items"][0].quantity == 1


class TestFailedCheckout:
    def test_gateway_failure_cancels_the_hold(self, gateway, list_card):
        card = list_card()
        gateway.configure(should_succeed=False, failure_reason="Stripe is down")
        orchestrator = CheckoutOrchestrator(gateway=gateway, settings=Settings())

        with pytest.raises(PaymentGatewayError):
            orchestrator.begin(GUEST, [CartLine(str(card.id))])

        assert _reservations() == []
        cancelled = current_domain.repository_for(Reservation).active_for_holder("guest", "guest-cart-1")
        assert cancelled == []

    def test_cancelled_hold_records_session_failure(self, gateway, list_card):
        card = list_card()
        gateway.configure(should_succeed=False)
        orchestrator = CheckoutOrchestrator(gateway=gateway, settings=Settings())

        with pytest.raises(PaymentGatewayError):
            orchestrator.begin(GUEST, [CartLine(str(card.id))])

        reservation = current_domain.repository_for(Reservation)._dao.query.all().first
        assert reservation.status == ReservationStatus.CANCELLED.value
        assert reservation.cancel_reason == "session_failed"

    def test_session_without_url_is_a_failure(self, list_card):
        class NoUrlGateway(FakeGateway):
            def create_checkout_session(self, *args, **kwargs):
                return CheckoutSession(session_id="cs_test_nourl", url="")

        card = list_card()
        orchestrator = CheckoutOrchestrator(gateway=NoUrlGateway(), settings=Settings())

        with pytest.raises(PaymentGatewayError):
            orchestrator.begin(GUEST, [CartLine(str(card.id))])

        assert _reservations() == []

    def test_unavailable_card_never_reaches_the_gateway(self, gateway, list_card):
        card = list_card()
        _begin(gateway, [CartLine(str(card.id))], holder=Holder("guest", "first"))
        calls_before = len(gateway.calls)

        orchestrator = CheckoutOrchestrator(gateway=gateway, settings=Settings())
        with pytest.raises(AlreadyReserved):
            orchestrator.begin(Holder("guest", "second"), [CartLine(str(card.id))])

        assert len(gateway.calls) == calls_before

    def test_empty_cart_is_rejected(self, gateway):
        with pytest.raises(ValidationError):
            CheckoutOrchestrator(gateway=gateway, settings=Settings()).begin(GUEST, [])


class TestHolder:
    def test_signed_in_user_wins_over_guest_cart(self):
        assert Holder.resolve(user_id="u1", guest_cart_id="g1") == Holder("user", "u1")

    def test_guest_cart_when_signed_out(self):
        assert Holder.resolve(guest_cart_id="g1") == Holder("guest", "g1")

    def test_someone_must_hold_the_cart(self):
        with pytest.raises(ValidationError):
            Holder.resolve()
