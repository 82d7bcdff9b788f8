"""Application tests for hold expiry and the expiry sweep."""

import json
from datetime import timedelta

from protean import current_domain

from storefront.reservation.availability import availability_for, get_active_reserved_quantity
from storefront.reservation.expiry import ExpireReservations
from storefront.reservation.holding import PlaceReservation
from storefront.reservation.reservation import Reservation, ReservationStatus
from storefront.utils.clock import utcnow


def _hold(card_id, quantity=1, holder_key="guest-1"):
    command = PlaceReservation(
        holder_type="guest",
        holder_key=holder_key,
        items=json.dumps([{"card_id": str(card_id), "quantity": quantity}]),
        hold_minutes=10,
    )
    return current_domain.process(command, asynchronous=False)


class TestLapsedHolds:
    def test_lapsed_hold_stops_counting_before_any_sweep(self, list_card):
        card = list_card(inventory_kind="bulk", stock=5)
        _hold(card.id, 3)

        later = utcnow() + timedelta(minutes=11)

        assert get_active_reserved_quantity([card.id], now=later)[str(card.id)] == 0
        assert availability_for([card.id], now=later)[str(card.id)].effective_available == 5

    def test_live_hold_counts(self, list_card):
        card = list_card(inventory_kind="bulk", stock=5)
        _hold(card.id, 3)

        assert availability_for([card.id])[str(card.id)].effective_available == 2


class TestExpireReservations:
    def test_sweep_marks_lapsed_holds_expired(self, list_card):
        card = list_card()
        reservation_id = _hold(card.id)

        expired = current_domain.process(
            ExpireReservations(as_of=utcnow() + timedelta(minutes=15)),
            asynchronous=False,
        )

        assert expired == 1
        reservation = current_domain.repository_for(Reservation).get(reservation_id)
        assert reservation.status == ReservationStatus.EXPIRED.value

    def test_sweep_leaves_live_holds_alone(self, list_card):
        card = list_card()
        reservation_id = _hold(card.id)

        expired = current_domain.process(ExpireReservations(), asynchronous=False)

        assert expired == 0
        reservation = current_domain.repository_for(Reservation).get(reservation_id)
        assert reservation.status == ReservationStatus.ACTIVE.value

    def test_sweep_does_not_touch_stock(self, list_card):
        card = list_card(inventory_kind="bulk", stock=5)
        _hold(card.id, 2)

        current_domain.process(ExpireReservations(as_of=utcnow() + timedelta(minutes=15)), asynchronous=False)

        assert availability_for([card.id])[str(card.id)].stock == 5


class TestManyHolds:
    def test_every_page_of_holds_is_counted_once(self, list_card):
        card = list_card(inventory_kind="bulk", stock=500)
        for n in range(130):
            _hold(card.id, 1, holder_key=f"guest-{n}")

        assert get_active_reserved_quantity([card.id])[str(card.id)] == 130

        later = utcnow() + timedelta(minutes=11)
        expired = current_domain.process(ExpireReservations(as_of=later), asynchronous=False)
        assert expired == 130
