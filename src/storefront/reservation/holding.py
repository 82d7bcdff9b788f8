"""Reservation holds: commands and handler.

Placing a hold validates every line against effective availability, then
supersedes whatever the holder already had active, so a holder never has
more than one active reservation. The holder's own earlier holds are left out
of the availability check because they are about to be cancelled.
"""

import json
from collections import OrderedDict

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from storefront.catalog.card import Card
from storefront.config import get_settings
from storefront.domain import storefront
from storefront.reservation.availability import ensure_can_hold
from storefront.reservation.reservation import (
    CancellationReason,
    HolderType,
    Reservation,
)
from storefront.utils.clock import utcnow

logger = structlog.get_logger(__name__)


@storefront.command(part_of="Reservation")
class PlaceReservation:
    holder_type = String(required=True, choices=HolderType)
    holder_key = String(required=True, max_length=255)
    items = Text(required=True)  # JSON: list of {card_id, quantity}
    hold_minutes = Integer(min_value=1)


@storefront.command(part_of="Reservation")
class LinkPaymentSession:
    reservation_id = Identifier(required=True)
    payment_session_id = String(required=True, max_length=255)


@storefront.command(part_of="Reservation")
class CancelReservation:
    reservation_id = Identifier(required=True)
    reason = String(choices=CancellationReason, default=CancellationReason.ABANDONED.value)


@storefront.command(part_of="Reservation")
class TransferGuestReservations:
    guest_key = String(required=True, max_length=255)
    user_id = String(required=True, max_length=255)


def _parse_lines(raw) -> list[tuple[str, int]]:
    """Merge duplicate cards and validate quantities, keeping first-seen order."""
    data = json.loads(raw) if isinstance(raw, str) else raw
    if not data:
        raise ValidationError({"items": ["At least one item is required"]})

    merged = OrderedDict()
    for entry in data:
        card_id = str(entry.get("card_id") or "").strip()
        quantity = entry.get("quantity")
        if not card_id:
            raise ValidationError({"items": ["Every item needs a card_id"]})
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            raise ValidationError({"items": [f"Quantity for card {card_id} must be a positive integer"]})
        merged[card_id] = merged.get(card_id, 0) + quantity
    return list(merged.items())


@storefront.command_handler(part_of=Reservation)
class ReservationHandler:
    @handle(PlaceReservation)
    def place_reservation(self, command):
        lines = _parse_lines(command.items)
        holder = (HolderType(command.holder_type).value, command.holder_key)
        hold_minutes = command.hold_minutes or get_settings().hold_duration_minutes
        now = utcnow()

        repo = current_domain.repository_for(Reservation)
        card_ids = [card_id for card_id, _ in lines]
        cards = current_domain.repository_for(Card).find_many(card_ids)
        reserved = repo.reserved_quantities(card_ids, now, exclude_holder=holder)

        for card_id, quantity in lines:
            ensure_can_hold(card_id, cards.get(card_id), quantity, reserved.get(card_id, 0))

        for previous in repo.active_for_holder(*holder):
            previous.cancel(CancellationReason.SUPERSEDED.value)
            repo.add(previous)
            logger.info(
                "Superseded previous reservation",
                reservation_id=str(previous.id),
                holder_type=holder[0],
            )

        reservation = Reservation.place(
            holder_type=holder[0],
            holder_key=holder[1],
            lines=lines,
            hold_minutes=hold_minutes,
            now=now,
        )
        repo.add(reservation)

        logger.info(
            "Reservation placed",
            reservation_id=str(reservation.id),
            holder_type=holder[0],
            items=len(lines),
            expires_at=reservation.expires_at.isoformat(),
        )
        return str(reservation.id)

    @handle(LinkPaymentSession)
    def link_payment_session(self, command):
        repo = current_domain.repository_for(Reservation)
        reservation = repo.get(command.reservation_id)
        reservation.link_payment_session(command.payment_session_id)
        repo.add(reservation)

    @handle(CancelReservation)
    def cancel_reservation(self, command):
        """Cancel an active hold. Returns False when it had already closed."""
        repo = current_domain.repository_for(Reservation)
        reservation = repo.get(command.reservation_id)
        if not reservation.is_active():
            logger.info(
                "Reservation already closed, nothing to cancel",
                reservation_id=str(reservation.id),
                status=reservation.status,
            )
            return False

        reservation.cancel(command.reason or CancellationReason.ABANDONED.value)
        repo.add(reservation)
        logger.info("Reservation cancelled", reservation_id=str(reservation.id), reason=reservation.cancel_reason)
        return True

    @handle(TransferGuestReservations)
    def transfer_guest_reservations(self, command):
        """Hand a guest's active hold to the account they signed in to."""
        repo = current_domain.repository_for(Reservation)
        guest_holds = repo.active_for_holder(HolderType.GUEST.value, command.guest_key)
        if not guest_holds:
            return 0

        for previous in repo.active_for_holder(HolderType.USER.value, command.user_id):
            previous.cancel(CancellationReason.SUPERSEDED.value)
            repo.add(previous)

        for reservation in guest_holds:
            reservation.reassign(HolderType.USER.value, command.user_id)
            repo.add(reservation)

        logger.info("Guest reservations transferred", count=len(guest_holds))
        return len(guest_holds)
