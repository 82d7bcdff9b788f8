"""Faker-based data generators for Locust load test scenarios.

Webhook payloads are built and signed the way the fake gateway expects, so
a load test can settle checkouts without a real payment provider.
"""

import json
import os
import random
import time
import uuid

from faker import Faker

from storefront.gateway.fake_adapter import compute_signature

fake = Faker()

WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET", "whsec_test")

_SETS = ["Alpha", "Beta", "Unlimited", "Arabian Nights", "Legends", "Base Set", "Jungle", "Fossil"]
_RARITIES = ["Common", "Uncommon", "Rare", "Holo Rare", "Mythic"]


def guest_cart_id() -> str:
    return f"guest-{uuid.uuid4().hex[:12]}"


def card_data(inventory_kind: str = "single", stock: int = 1) -> dict:
    return {
        "name": f"{fake.first_name()} {random.choice(['Dragon', 'Wizard', 'Golem', 'Phoenix'])}",
        "price": round(random.uniform(1.0, 250.0), 2),
        "inventory_kind": inventory_kind,
        "stock": stock,
        "set_name": random.choice(_SETS),
        "rarity": random.choice(_RARITIES),
    }


def checkout_data(card_ids: list[str], cart_id: str, quantity: int = 1) -> dict:
    return {
        "items": [{"card_id": card_id, "quantity": quantity} for card_id in card_ids],
        "guest_cart_id": cart_id,
        "customer_email": fake.email(),
    }


def completed_event(session_id: str, lines: list[dict], event_id: str | None = None) -> tuple[str, str]:
    """Return a signed ``(payload, signature header)`` for a paid checkout session.

    Args:
        lines: dicts with card_id, name, unit_amount (cents) and quantity.
    """
    subtotal = sum(line["unit_amount"] * line["quantity"] for line in lines)
    body = {
        "id": event_id or f"evt_lt_{uuid.uuid4().hex[:16]}",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session_id,
                "payment_intent": f"pi_lt_{uuid.uuid4().hex[:8]}",
                "payment_status": "paid",
                "customer_email": fake.email(),
                "shipping_address": {"name": fake.name(), "line1": fake.street_address(), "country": "US"},
                "line_items": lines,
                "amount_subtotal": subtotal,
                "amount_tax": 0,
                "amount_shipping": 0,
                "amount_total": subtotal,
                "currency": "usd",
                "metadata": {},
            }
        },
    }
    payload = json.dumps(body)
    timestamp = int(time.time())
    return payload, f"t={timestamp},v1={compute_signature(WEBHOOK_SECRET, payload, timestamp)}"
