"""Repository for the Reservation aggregate."""

from collections import defaultdict
from datetime import datetime

from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.reservation.reservation import Reservation, ReservationItem, ReservationStatus

_PAGE_SIZE = 100


@storefront.repository(part_of=Reservation)
class ReservationRepository:
    def _each(self, **filters):
        """Yield every reservation matching ``filters``, a page at a time.

        Pages are ordered by id so consecutive pages neither skip nor repeat rows.
        """
        offset = 0
        while True:
            page = self._dao.query.filter(**filters).order_by("id").offset(offset).limit(_PAGE_SIZE).all()
            yield from page.items
            if len(page.items) < _PAGE_SIZE:
                return
            offset += _PAGE_SIZE

    def active_for_holder(self, holder_type: str, holder_key: str) -> list[Reservation]:
        return list(
            self._each(
                status=ReservationStatus.ACTIVE.value,
                holder_type=holder_type,
                holder_key=holder_key,
            )
        )

    def find(self, reservation_id) -> Reservation | None:
        return self._dao.query.filter(id=str(reservation_id)).all().first

    def find_by_payment_session(self, payment_session_id: str) -> Reservation | None:
        return self._dao.query.filter(payment_session_id=payment_session_id).all().first

    def reserved_quantities(self, card_ids, now: datetime, exclude_holder=None) -> dict[str, int]:
        """Sum the quantities held on ``card_ids`` by holds still live at ``now``.

        Args:
            exclude_holder: optional ``(holder_type, holder_key)`` whose own
                holds are left out of the sum.
        """
        wanted = {str(card_id) for card_id in card_ids}
        totals = defaultdict(int)
        for reservation in self._each(status=ReservationStatus.ACTIVE.value, expires_at__gt=now):
            if exclude_holder and (reservation.holder_type, reservation.holder_key) == tuple(exclude_holder):
                continue
            for card_id, quantity in reservation.lines:
                if card_id in wanted:
                    totals[card_id] += quantity
        return {card_id: totals.get(card_id, 0) for card_id in wanted}

    def expired_active(self, now: datetime) -> list[Reservation]:
        """Active reservations whose hold window closed at or before ``now``."""
        return list(self._each(status=ReservationStatus.ACTIVE.value, expires_at__lte=now))

    def expire(self, reservation_ids, now: datetime) -> int:
        """Mark the given reservations expired in one conditional update.

        Only rows that are still active are touched, so a reservation consumed
        or cancelled since it was read keeps its status.
        """
        ids = [str(reservation_id) for reservation_id in reservation_ids]
        if not ids:
            return 0
        return self._dao.query.filter(id__in=ids, status=ReservationStatus.ACTIVE.value).update(
            status=ReservationStatus.EXPIRED.value,
            closed_at=now,
        )

    def purge_lapsed_before(self, cutoff: datetime) -> int:
        """Delete every reservation whose hold window ended before ``cutoff``.

        Holds still marked active are included: once past the grace window
        they no longer count against availability whether or not the expiry
        sweep reached them.
        """
        doomed = list(self._each(expires_at__lt=cutoff))
        items = current_domain.repository_for(ReservationItem)._dao
        for reservation in doomed:
            for item in reservation.items:
                items.delete(item)
            self._dao.delete(reservation)
        return len(doomed)
