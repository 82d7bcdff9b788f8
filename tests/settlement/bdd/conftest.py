"""Shared BDD fixtures and step definitions for payment settlement."""

import pytest
from protean import current_domain
from pytest_bdd import given, parsers, then

from storefront.catalog.card import Card, CardStatus
from storefront.orders.order import Order
from storefront.reservation.reservation import Reservation


@pytest.fixture()
def deliveries():
    return []


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("a single card is listed", target_fixture="card")
def _single_card(list_card):
    return list_card(name="Mox Sapphire", price=25.0)


@given(parsers.cfparse("a bulk card with {stock:d} in stock is listed"), target_fixture="card")
def _bulk_card(list_card, stock):
    return list_card(name="Lightning Bolt", price=1.5, inventory_kind="bulk", stock=stock)


@given(parsers.cfparse("a shopper checks out {quantity:d} of the card"), target_fixture="redirect")
def _checks_out(card, start_checkout, quantity):
    return start_checkout((card, quantity))


@given(parsers.cfparse('the payment event "{event_id}" is delivered'))
def _delivered(redirect, deliver, deliveries, event_id):
    deliveries.append(deliver(redirect.session_id, event_id=event_id))


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("{stock:d} of the card remain in stock"))
def _remaining(card, stock):
    assert current_domain.repository_for(Card).get(card.id).stock == stock


@then(parsers.cfparse("exactly {count:d} order exists"))
def _order_count(count):
    assert len(current_domain.repository_for(Order)._dao.query.all().items) == count


@then(parsers.cfparse('the last delivery is reported as "{outcome}"'))
def _last_outcome(deliveries, outcome):
    assert deliveries[-1]["outcome"] == outcome


@then("the card is sold")
def _card_sold(card):
    sold = current_domain.repository_for(Card).get(card.id)
    assert sold.status == CardStatus.SOLD.value
    assert sold.is_active is False


@then(parsers.cfparse('the shopper\'s hold is "{status}"'))
def _hold_status(redirect, status):
    assert current_domain.repository_for(Reservation).get(redirect.reservation_id).status == status


@then(parsers.cfparse('order "{order_number}" is "{status}"'))
def _order_status(order_number, status):
    order = current_domain.repository_for(Order).find_by_number(order_number)
    assert order is not None
    assert order.status == status
