"""Human-facing order numbers such as ``KTXZ-00001``.

Numbers come from a single counter record bumped with a conditional update
on the value that was read, so two settlements running at once can never be
handed the same number.
"""

import structlog
from protean.exceptions import ValidationError
from protean.fields import Integer, String
from protean.utils.globals import current_domain

from storefront.config import get_settings
from storefront.domain import storefront
from storefront.errors import ConcurrentUpdateError

logger = structlog.get_logger(__name__)

ORDER_COUNTER = "order_number"

_MAX_ATTEMPTS = 10


@storefront.aggregate
class OrderCounter:
    name = String(identifier=True, unique=True, max_length=50)
    value = Integer(default=0, min_value=0)


@storefront.repository(part_of=OrderCounter)
class OrderCounterRepository:
    def next_value(self, name: str) -> int:
        """Increment the named counter and return its new value."""
        for attempt in range(1, _MAX_ATTEMPTS + 1):
            counter = self._dao.query.filter(name=name).all().first
            if counter is None:
                try:
                    self._dao.create(name=name, value=1)
                    return 1
                except ValidationError:
                    # Another writer created the counter first
                    continue

            updated = self._dao.query.filter(name=name, value=counter.value).update(value=counter.value + 1)
            if updated:
                return counter.value + 1

            logger.info("Order counter moved concurrently, retrying", counter=name, attempt=attempt)

        raise ConcurrentUpdateError(f"Could not increment counter {name}")


def next_order_number() -> str:
    value = current_domain.repository_for(OrderCounter).next_value(ORDER_COUNTER)
    return f"{get_settings().order_number_prefix}-{value:05d}"
