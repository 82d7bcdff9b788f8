"""Processed-payment-event ledger.

A record per provider event id. Claiming an event is an insert that fails if
the id is already present, which makes redelivered webhooks harmless. The
claim is written in the same unit of work as the settlement it guards, so an
event whose processing failed is not left claimed and the provider's retry
gets a clean second attempt.

Records only matter while the provider may still redeliver, so they are
pruned after a retention window.
"""

from datetime import timedelta

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import DateTime, Integer, String
from protean.utils.globals import current_domain

from storefront.config import get_settings
from storefront.domain import storefront
from storefront.utils.clock import utcnow

logger = structlog.get_logger(__name__)


@storefront.aggregate
class PaymentEventRecord:
    event_id = String(identifier=True, unique=True, max_length=255)
    event_type = String(required=True, max_length=100)
    claimed_at = DateTime(required=True)


@storefront.repository(part_of=PaymentEventRecord)
class PaymentEventRecordRepository:
    def claim(self, event_id: str, event_type: str, now=None) -> bool:
        """Record ``event_id`` as processed. False if it was already claimed."""
        try:
            self._dao.create(event_id=event_id, event_type=event_type, claimed_at=now or utcnow())
        except ValidationError:
            return False
        return True

    def is_claimed(self, event_id: str) -> bool:
        return self._dao.query.filter(event_id=event_id).all().first is not None

    def prune(self, older_than) -> int:
        """Delete records claimed before ``older_than``."""
        return self._dao.query.filter(claimed_at__lt=older_than).delete() or 0


@storefront.command(part_of="PaymentEventRecord")
class PruneLedger:
    retention_days = Integer(min_value=0)
    as_of = DateTime()


@storefront.command_handler(part_of=PaymentEventRecord)
class PruneLedgerHandler:
    @handle(PruneLedger)
    def prune_ledger(self, command):
        retention_days = command.retention_days
        if retention_days is None:
            retention_days = get_settings().ledger_retention_days
        cutoff = (command.as_of or utcnow()) - timedelta(days=retention_days)

        pruned = current_domain.repository_for(PaymentEventRecord).prune(cutoff)
        logger.info("Payment event ledger pruned", pruned=pruned, cutoff=cutoff.isoformat())
        return pruned
