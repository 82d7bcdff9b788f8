"""Reservation retention: deletes lapsed holds once they are no longer useful.

Stands in for a store-level TTL index on ``expires_at``. It runs well behind
the expiry sweep and never decides availability.
"""

from datetime import timedelta

import structlog
from protean import handle
from protean.fields import DateTime, Integer
from protean.utils.globals import current_domain

from storefront.config import get_settings
from storefront.domain import storefront
from storefront.reservation.reservation import Reservation
from storefront.utils.clock import utcnow

logger = structlog.get_logger(__name__)


@storefront.command(part_of="Reservation")
class PurgeReservations:
    grace_hours = Integer(min_value=0)
    as_of = DateTime()


@storefront.command_handler(part_of=Reservation)
class PurgeReservationsHandler:
    @handle(PurgeReservations)
    def purge_reservations(self, command):
        grace_hours = command.grace_hours
        if grace_hours is None:
            grace_hours = get_settings().reservation_purge_grace_hours
        cutoff = (command.as_of or utcnow()) - timedelta(hours=grace_hours)

        purged = current_domain.repository_for(Reservation).purge_lapsed_before(cutoff)
        logger.info("Lapsed reservations purged", purged=purged, cutoff=cutoff.isoformat())
        return purged
