import os
from pathlib import Path

import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Pytest hook to run before collecting tests.

    Fetch and activate the domain by pushing the associated domain_context. The activated domain can then be referred to elsewhere as `current_domain`
    """
    os.environ["PROTEAN_ENV"] = session.config.option.env

    from storefront.domain import storefront

    storefront.init()
    storefront.domain_context().push()


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = Path(item.fspath)

        if "/domain/" in str(test_path):
            item.add_marker(pytest.mark.domain)
        elif "/application/" in str(test_path):
            item.add_marker(pytest.mark.application)
        elif "/integration/" in str(test_path):
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture(scope="session", autouse=True)
def setup_db(request):
    from storefront.domain import storefront
    from storefront.utils.db import drop_db, setup_db

    setup_db(storefront)

    yield

    drop_db(storefront)


@pytest.fixture(autouse=True)
def run_around_tests():
    """Fixture to automatically cleanup infrastructure after every test"""
    from storefront.config import reset_settings
    from storefront.gateway import reset_gateway
    from storefront.notifications import reset_mailer

    reset_settings()
    reset_gateway()
    reset_mailer()

    yield

    from protean import current_domain

    # Clear all databases
    for _, provider in current_domain.providers.items():
        provider._data_reset()

    # Drain event stores
    current_domain.event_store.store._data_reset()

    reset_settings()
    reset_gateway()
    reset_mailer()


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------
@pytest.fixture()
def gateway():
    """A fresh FakeGateway installed as the active gateway."""
    from storefront.gateway import set_gateway
    from storefront.gateway.fake_adapter import FakeGateway

    fake = FakeGateway(webhook_secret="whsec_test")
    set_gateway(fake)
    return fake


@pytest.fixture()
def mailer():
    from storefront.notifications import set_mailer
    from storefront.notifications.fake_mailer import FakeMailer

    fake = FakeMailer()
    set_mailer(fake)
    return fake


@pytest.fixture()
def list_card():
    """Factory: list a card through the command and return it reloaded."""
    from protean import current_domain

    from storefront.catalog.card import Card
    from storefront.catalog.listing import ListCard

    def _list(name="Black Lotus", price=25.0, inventory_kind="single", stock=1, **extra):
        card_id = current_domain.process(
            ListCard(name=name, price=price, inventory_kind=inventory_kind, stock=stock, **extra),
            asynchronous=False,
        )
        return current_domain.repository_for(Card).get(card_id)

    return _list


@pytest.fixture()
def place_order():
    """Factory: store an order for ``(card, quantity)`` lines as settlement would."""
    from protean import current_domain

    from storefront.orders.order import Order

    counter = {"n": 0}

    def _place(*lines, paid=True, payment_intent_id="pi_test_1"):
        counter["n"] += 1
        subtotal = sum(card.price * quantity for card, quantity in lines)
        order = Order.materialize(
            order_number=f"KTXZ-{90000 + counter['n']}",
            email="buyer@example.com",
            items_data=[
                {"card_id": str(card.id), "name": card.name, "unit_price": card.price, "quantity": quantity}
                for card, quantity in lines
            ],
            amounts={"subtotal": subtotal, "tax": 0.0, "shipping": 0.0, "total": subtotal},
            payment_session_id=f"cs_test_order_{counter['n']}",
            paid=paid,
            payment_intent_id=payment_intent_id,
        )
        current_domain.repository_for(Order).add(order)
        return order

    return _place
