"""Application tests for placing, replacing and cancelling holds."""

import json
from datetime import timedelta

import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from storefront.errors import AlreadyReserved, CardUnavailable, InsufficientStock, OutOfStock
from storefront.reservation.availability import get_active_reserved_quantity
from storefront.reservation.holding import CancelReservation, PlaceReservation
from storefront.reservation.reservation import Reservation, ReservationStatus
from storefront.utils.clock import utcnow


def _hold(card_quantities, holder_key="guest-1", holder_type="guest", hold_minutes=10):
    command = PlaceReservation(
        holder_type=holder_type,
        holder_key=holder_key,
        items=json.dumps([{"card_id": str(card_id), "quantity": qty} for card_id, qty in card_quantities]),
        hold_minutes=hold_minutes,
    )
    return current_domain.process(command, asynchronous=False)


def _get(reservation_id):
    return current_domain.repository_for(Reservation).get(reservation_id)


class TestPlaceReservation:
    def test_hold_is_persisted_active(self, list_card):
        card = list_card()
        reservation = _get(_hold([(card.id, 1)]))

        assert reservation.status == ReservationStatus.ACTIVE.value
        assert reservation.lines == [(str(card.id), 1)]
        assert reservation.expires_at > utcnow() + timedelta(minutes=9)

    def test_duplicate_lines_are_merged(self, list_card):
        card = list_card(inventory_kind="bulk", stock=10)
        reservation = _get(_hold([(card.id, 2), (card.id, 3)]))

        assert reservation.lines == [(str(card.id), 5)]

    def test_zero_quantity_is_rejected(self, list_card):
        card = list_card(inventory_kind="bulk", stock=10)
        with pytest.raises(ValidationError):
            _hold([(card.id, 0)])

    def test_missing_card_is_rejected(self):
        with pytest.raises(CardUnavailable) as exc:
            _hold([("no-such-card", 1)])
        assert exc.value.code == "missing-item"

    def test_failed_validation_reserves_nothing(self, list_card):
        free = list_card(inventory_kind="bulk", stock=10)
        with pytest.raises(CardUnavailable):
            _hold([(free.id, 1), ("no-such-card", 1)])

        assert get_active_reserved_quantity([free.id]) == {str(free.id): 0}


class TestSingleCardExclusivity:
    def test_second_holder_gets_already_reserved(self, list_card):
        card = list_card()
        _hold([(card.id, 1)], holder_key="guest-a")

        with pytest.raises(AlreadyReserved):
            _hold([(card.id, 1)], holder_key="guest-b")

    def test_only_one_active_hold_references_the_card(self, list_card):
        card = list_card()
        _hold([(card.id, 1)], holder_key="guest-a")
        with pytest.raises(AlreadyReserved):
            _hold([(card.id, 1)], holder_key="guest-b")

        active = current_domain.repository_for(Reservation)._dao.query.filter(status="active").all().items
        holding = [r for r in active if str(card.id) in dict(r.lines)]
        assert len(holding) == 1


class TestBulkConservation:
    def test_third_request_exceeding_stock_fails(self, list_card):
        card = list_card(inventory_kind="bulk", stock=5)
        _hold([(card.id, 2)], holder_key="guest-a")
        _hold([(card.id, 2)], holder_key="guest-b")

        with pytest.raises(InsufficientStock) as exc:
            _hold([(card.id, 2)], holder_key="guest-c")
        assert exc.value.available == 1

        assert get_active_reserved_quantity([card.id])[str(card.id)] == 4

    def test_fully_held_stock_is_out_of_stock(self, list_card):
        card = list_card(inventory_kind="bulk", stock=2)
        _hold([(card.id, 2)], holder_key="guest-a")

        with pytest.raises(OutOfStock):
            _hold([(card.id, 1)], holder_key="guest-b")


class TestReplacement:
    def test_restarting_checkout_supersedes_previous_hold(self, list_card):
        card = list_card()
        first_id = _hold([(card.id, 1)])
        second_id = _hold([(card.id, 1)])

        first, second = _get(first_id), _get(second_id)
        assert first.status == ReservationStatus.CANCELLED.value
        assert first.cancel_reason == "superseded"
        assert second.status == ReservationStatus.ACTIVE.value

        active = current_domain.repository_for(Reservation).active_for_holder("guest", "guest-1")
        assert [str(r.id) for r in active] == [second_id]

    def test_own_hold_does_not_block_a_bigger_request(self, list_card):
        card = list_card(inventory_kind="bulk", stock=5)
        _hold([(card.id, 4)])

        _hold([(card.id, 5)])

        assert get_active_reserved_quantity([card.id])[str(card.id)] == 5

    def test_failed_restart_keeps_previous_hold(self, list_card):
        card = list_card(inventory_kind="bulk", stock=5)
        first_id = _hold([(card.id, 2)])

        with pytest.raises(InsufficientStock):
            _hold([(card.id, 6)])

        assert _get(first_id).status == ReservationStatus.ACTIVE.value


class TestCancelReservation:
    def test_cancel_releases_hold(self, list_card):
        card = list_card()
        reservation_id = _hold([(card.id, 1)])

        cancelled = current_domain.process(CancelReservation(reservation_id=reservation_id), asynchronous=False)

        assert cancelled is True
        assert _get(reservation_id).cancel_reason == "abandoned"
        assert get_active_reserved_quantity([card.id])[str(card.id)] == 0

    def test_cancelling_a_closed_hold_is_a_no_op(self, list_card):
        card = list_card()
        reservation_id = _hold([(card.id, 1)])
        current_domain.process(CancelReservation(reservation_id=reservation_id), asynchronous=False)

        again = current_domain.process(CancelReservation(reservation_id=reservation_id), asynchronous=False)

        assert again is False
