"""Reservation expiry: command and handler for closing lapsed holds.

Designed to be triggered periodically by an external scheduler (cron, K8s
CronJob) via the maintenance API endpoint or ``manage.py expire-reservations``.
Expiring a hold touches no stock: lapsed holds already stopped counting
against availability, the sweep only records that they are over.
"""

import structlog
from protean import handle
from protean.fields import DateTime
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.reservation.reservation import Reservation
from storefront.utils.clock import utcnow

logger = structlog.get_logger(__name__)


@storefront.command(part_of="Reservation")
class ExpireReservations:
    """Mark active reservations past their expiry time as expired."""

    as_of = DateTime()  # Optional: defaults to now


@storefront.command_handler(part_of=Reservation)
class ExpireReservationsHandler:
    @handle(ExpireReservations)
    def expire_reservations(self, command):
        as_of = command.as_of or utcnow()
        repo = current_domain.repository_for(Reservation)

        lapsed = repo.expired_active(as_of)
        if not lapsed:
            logger.info("No lapsed reservations found", as_of=as_of.isoformat())
            return 0

        expired_count = repo.expire([reservation.id for reservation in lapsed], as_of)

        logger.info(
            "Lapsed reservations expired",
            found=len(lapsed),
            expired_count=expired_count,
            as_of=as_of.isoformat(),
        )
        return expired_count
