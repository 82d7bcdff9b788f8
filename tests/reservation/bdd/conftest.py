"""Shared BDD fixtures and step definitions for card holds."""

import json
from datetime import timedelta

import pytest
from protean import current_domain
from pytest_bdd import given, parsers, then

from storefront.errors import AvailabilityError
from storefront.reservation.availability import availability_for
from storefront.reservation.holding import PlaceReservation
from storefront.reservation.reservation import Reservation
from storefront.utils.clock import utcnow


@pytest.fixture()
def holds():
    """Reservation ids by shopper, plus the outcome of the last attempt."""
    return {"by_shopper": {}, "error": None, "placed": None}


@pytest.fixture()
def hold_card():
    """Place a guest hold on ``quantity`` units of ``card`` for ``shopper``."""

    def _hold(card, shopper, quantity):
        command = PlaceReservation(
            holder_type="guest",
            holder_key=shopper,
            items=json.dumps([{"card_id": str(card.id), "quantity": quantity}]),
        )
        return current_domain.process(command, asynchronous=False)

    return _hold


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("a single card is listed", target_fixture="card")
def _single_card(list_card):
    return list_card(name="Mox Sapphire", price=25.0)


@given(parsers.cfparse("a bulk card with {stock:d} in stock is listed"), target_fixture="card")
def _bulk_card(list_card, stock):
    return list_card(name="Lightning Bolt", price=1.5, inventory_kind="bulk", stock=stock)


@given(parsers.cfparse('shopper "{shopper}" holds {quantity:d} of the card'))
def _shopper_holds(card, holds, hold_card, shopper, quantity):
    holds["by_shopper"][shopper] = hold_card(card, shopper, quantity)


@given(parsers.cfparse('the hold of shopper "{shopper}" has lapsed'))
def _hold_lapsed(holds, shopper):
    repo = current_domain.repository_for(Reservation)
    reservation = repo.get(holds["by_shopper"][shopper])
    reservation.expires_at = utcnow() - timedelta(minutes=1)
    repo.add(reservation)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the hold is refused with "{code}"'))
def _hold_refused(holds, code):
    assert isinstance(holds["error"], AvailabilityError)
    assert holds["error"].code == code


@then("the hold is placed")
def _hold_placed(holds):
    assert holds["error"] is None
    assert holds["placed"] is not None


@then(parsers.cfparse("{available:d} of the card are available"))
def _available(card, available):
    assert availability_for([card.id])[str(card.id)].effective_available == available
