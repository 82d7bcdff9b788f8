"""Per-user state tracking for Locust load test scenarios.

Each Locust user instance keeps its own checkout state. The contended card
is the one deliberate exception: every ContendedCardUser races for it.
"""

from dataclasses import dataclass, field


@dataclass
class CheckoutState:
    """Tracks one simulated shopper's checkout."""

    guest_cart_id: str | None = None
    card_ids: list[str] = field(default_factory=list)
    session_id: str | None = None
    order_id: str | None = None
    last_event: tuple[str, str] | None = None


@dataclass
class ContendedCard:
    card_id: str | None = None
    settled: int = 0
