"""Reservation aggregate (CQRS): a time-boxed hold on cards during checkout.

Holds are advisory. They keep other shoppers from starting a checkout for the
same stock while the holder pays, but the stock itself is only taken when the
payment settles.

State machine:
    ACTIVE → CONSUMED   (payment completed)
    ACTIVE → CANCELLED  (holder restarted checkout, abandoned it, or the
                         payment session could not be created)
    ACTIVE → EXPIRED    (hold window passed without payment)
"""

import json
from datetime import datetime, timedelta
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String

from storefront.domain import storefront
from storefront.reservation.events import (
    ReservationCancelled,
    ReservationConsumed,
    ReservationLinked,
    ReservationPlaced,
)
from storefront.utils.clock import as_utc, utcnow


class HolderType(Enum):
    USER = "user"
    GUEST = "guest"


class ReservationStatus(Enum):
    ACTIVE = "active"
    CONSUMED = "consumed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class CancellationReason(Enum):
    SUPERSEDED = "superseded"
    ABANDONED = "abandoned"
    SESSION_FAILED = "session_failed"
    SESSION_EXPIRED = "session_expired"
    PAYMENT_FAILED = "payment_failed"


_VALID_TRANSITIONS = {
    ReservationStatus.ACTIVE: {
        ReservationStatus.CONSUMED,
        ReservationStatus.CANCELLED,
        ReservationStatus.EXPIRED,
    },
    ReservationStatus.CONSUMED: set(),
    ReservationStatus.CANCELLED: set(),
    ReservationStatus.EXPIRED: set(),
}


@storefront.entity(part_of="Reservation")
class ReservationItem:
    card_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    position = Integer(required=True, min_value=0)


@storefront.aggregate
class Reservation:
    holder_type = String(required=True, choices=HolderType)
    holder_key = String(required=True, max_length=255)
    items = HasMany(ReservationItem)
    status = String(choices=ReservationStatus, default=ReservationStatus.ACTIVE.value)
    expires_at = DateTime(required=True)
    payment_session_id = String(max_length=255)
    order_id = Identifier()
    cancel_reason = String(choices=CancellationReason)
    created_at = DateTime()
    closed_at = DateTime()

    @invariant.post
    def must_hold_at_least_one_item(self):
        if not self.items:
            raise ValidationError({"items": ["A reservation must hold at least one item"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(cls, holder_type, holder_key, lines, hold_minutes, now=None):
        """Create an active hold.

        Args:
            lines: ordered list of ``(card_id, quantity)`` pairs.
        """
        now = now or utcnow()
        expires_at = now + timedelta(minutes=hold_minutes)
        items = [
            ReservationItem(card_id=str(card_id), quantity=quantity, position=position)
            for position, (card_id, quantity) in enumerate(lines)
        ]
        reservation = cls(
            holder_type=HolderType(holder_type).value,
            holder_key=holder_key,
            items=items,
            status=ReservationStatus.ACTIVE.value,
            expires_at=expires_at,
            created_at=now,
        )
        reservation.raise_(
            ReservationPlaced(
                reservation_id=str(reservation.id),
                holder_type=reservation.holder_type,
                holder_key=holder_key,
                items=json.dumps([{"card_id": str(c), "quantity": q} for c, q in lines]),
                expires_at=expires_at,
            )
        )
        return reservation

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def lines(self) -> list[tuple[str, int]]:
        """The held ``(card_id, quantity)`` pairs in the order they were requested."""
        ordered = sorted(self.items, key=lambda item: item.position)
        return [(str(item.card_id), item.quantity) for item in ordered]

    def is_active(self) -> bool:
        return ReservationStatus(self.status) == ReservationStatus.ACTIVE

    def is_holding(self, now: datetime) -> bool:
        """Whether the hold still counts against availability at ``now``."""
        return self.is_active() and as_utc(self.expires_at) > as_utc(now)

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target):
        current = ReservationStatus(self.status)
        if target not in _VALID_TRANSITIONS[current]:
            raise ValidationError({"status": [f"Cannot move a {current.value} reservation to {target.value}"]})

    def link_payment_session(self, payment_session_id):
        if not self.is_active():
            raise ValidationError({"status": ["Only an active reservation can be linked to a payment session"]})
        self.payment_session_id = payment_session_id
        self.raise_(
            ReservationLinked(
                reservation_id=str(self.id),
                payment_session_id=payment_session_id,
            )
        )

    def reassign(self, holder_type, holder_key):
        """Move an active hold to another holder, e.g. a guest who signed in."""
        if not self.is_active():
            raise ValidationError({"status": ["Only an active reservation can change holder"]})
        self.holder_type = HolderType(holder_type).value
        self.holder_key = holder_key

    def cancel(self, reason):
        self._assert_can_transition(ReservationStatus.CANCELLED)
        now = utcnow()
        self.status = ReservationStatus.CANCELLED.value
        self.cancel_reason = CancellationReason(reason).value
        self.closed_at = now
        self.raise_(
            ReservationCancelled(
                reservation_id=str(self.id),
                reason=self.cancel_reason,
                cancelled_at=now,
            )
        )

    def consume(self, order_id):
        self._assert_can_transition(ReservationStatus.CONSUMED)
        now = utcnow()
        self.status = ReservationStatus.CONSUMED.value
        self.order_id = order_id
        self.closed_at = now
        self.raise_(
            ReservationConsumed(
                reservation_id=str(self.id),
                order_id=str(order_id),
                consumed_at=now,
            )
        )
