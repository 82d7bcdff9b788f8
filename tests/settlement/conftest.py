import pytest
from protean import current_domain

from storefront.checkout.orchestrator import CartLine, CheckoutOrchestrator, CheckoutRedirect, Holder
from storefront.config import Settings
from storefront.settlement.processor import payment_event_command


@pytest.fixture()
def start_checkout(gateway):
    """Factory: run a checkout for ``(card, quantity)`` lines and return the redirect."""

    def _start(*lines, holder_key="guest-1"):
        orchestrator = CheckoutOrchestrator(gateway=gateway, settings=Settings())
        cart = [CartLine(str(card.id), quantity) for card, quantity in lines]
        with pytest.raises(CheckoutRedirect) as exc:
            orchestrator.begin(Holder("guest", holder_key), cart)
        return exc.value

    return _start


@pytest.fixture()
def deliver(gateway):
    """Factory: sign, verify and process a webhook for a session the gateway created."""

    def _deliver(session_id, **event_kwargs):
        payload, signature = gateway.session_event(session_id, **event_kwargs)
        event = gateway.construct_event(payload, signature)
        return current_domain.process(payment_event_command(event), asynchronous=False)

    return _deliver
