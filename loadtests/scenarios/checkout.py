"""Checkout load test scenarios.

CheckoutUser walks the full journey for its own cards and redelivers every
payment event to exercise idempotent settlement. ContendedCardUser instances
all race for one single card: exactly one checkout may hold it at a time and
it may settle only once.
"""

from locust import HttpUser, SequentialTaskSet, between, task

from loadtests.data_generators import card_data, checkout_data, completed_event, guest_cart_id
from loadtests.helpers.response import error_code, extract_error_detail
from loadtests.helpers.state import CheckoutState, ContendedCard

CONTENDED = ContendedCard()

_EXPECTED_CONFLICTS = {"reserved", "unavailable", "out-of-stock", "insufficient-stock"}


def _session_id(response) -> str | None:
    location = response.headers.get("location") or ""
    return location.rsplit("/", 1)[-1] or None


class CheckoutJourney(SequentialTaskSet):
    """List Cards -> Checkout -> Webhook -> Redelivered Webhook -> Availability."""

    def on_start(self):
        self.state = CheckoutState(guest_cart_id=guest_cart_id())
        self.prices = {}

    @task
    def list_cards(self):
        for payload in (card_data("single"), card_data("bulk", stock=50)):
            with self.client.post("/cards", json=payload, catch_response=True, name="POST /cards") as resp:
                if resp.status_code == 201:
                    card_id = resp.json()["card_id"]
                    self.state.card_ids.append(card_id)
                    self.prices[card_id] = (payload["name"], round(payload["price"] * 100))
                else:
                    resp.failure(f"List card failed: {resp.status_code} - {extract_error_detail(resp)}")
                    self.interrupt()

    @task
    def begin_checkout(self):
        payload = checkout_data(self.state.card_ids, self.state.guest_cart_id)
        with self.client.post(
            "/checkout",
            json=payload,
            allow_redirects=False,
            catch_response=True,
            name="POST /checkout",
        ) as resp:
            if resp.status_code == 303:
                self.state.session_id = _session_id(resp)
            else:
                resp.failure(f"Checkout failed: {resp.status_code} - {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def settle(self):
        lines = [
            {"card_id": card_id, "name": name, "unit_amount": cents, "quantity": 1}
            for card_id, (name, cents) in self.prices.items()
        ]
        self.state.last_event = completed_event(self.state.session_id, lines)
        self._deliver("POST /webhooks/payments", {"order_created", "already_recorded"})

    @task
    def redeliver(self):
        self._deliver("POST /webhooks/payments (redelivery)", {"duplicate"})

    @task
    def check_availability(self):
        card_id = self.state.card_ids[0]
        with self.client.get(
            f"/cards/{card_id}/availability",
            catch_response=True,
            name="GET /cards/{id}/availability",
        ) as resp:
            if resp.status_code != 200 or resp.json()["available"] != 0:
                resp.failure(f"Sold single card still available: {resp.text[:200]}")

    @task
    def done(self):
        self.interrupt()

    def _deliver(self, name, expected_outcomes):
        payload, signature = self.state.last_event
        with self.client.post(
            "/webhooks/payments",
            data=payload,
            headers={"stripe-signature": signature, "content-type": "application/json"},
            catch_response=True,
            name=name,
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Webhook failed: {resp.status_code} - {extract_error_detail(resp)}")
            elif resp.json()["outcome"] not in expected_outcomes:
                resp.failure(f"Unexpected outcome {resp.json()['outcome']}")


class CheckoutUser(HttpUser):
    tasks = [CheckoutJourney]
    wait_time = between(0.5, 2)


class ContendedCardUser(HttpUser):
    """Races every other ContendedCardUser for the same single card."""

    wait_time = between(0.1, 0.5)

    def on_start(self):
        self.cart_id = guest_cart_id()
        if CONTENDED.card_id is None:
            resp = self.client.post("/cards", json=card_data("single"), name="POST /cards (contended)")
            if resp.status_code == 201 and CONTENDED.card_id is None:
                CONTENDED.card_id = resp.json()["card_id"]

    @task
    def grab_card(self):
        if CONTENDED.card_id is None:
            return
        with self.client.post(
            "/checkout",
            json=checkout_data([CONTENDED.card_id], self.cart_id),
            allow_redirects=False,
            catch_response=True,
            name="POST /checkout (contended)",
        ) as resp:
            if resp.status_code == 303:
                resp.success()
                self._pay(_session_id(resp))
            elif resp.status_code == 409 and error_code(resp) in _EXPECTED_CONFLICTS:
                resp.success()
            else:
                resp.failure(f"Unexpected checkout answer: {resp.status_code} - {extract_error_detail(resp)}")

    def _pay(self, session_id):
        lines = [{"card_id": CONTENDED.card_id, "name": "Contended card", "unit_amount": 1000, "quantity": 1}]
        payload, signature = completed_event(session_id, lines)
        resp = self.client.post(
            "/webhooks/payments",
            data=payload,
            headers={"stripe-signature": signature, "content-type": "application/json"},
            name="POST /webhooks/payments (contended)",
        )
        if resp.status_code == 200 and resp.json().get("outcome") == "order_created":
            CONTENDED.settled += 1
