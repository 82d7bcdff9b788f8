"""Storefront bounded context: card inventory, reservations and checkout settlement.

Holds stock against concurrent buyers while they pay on the provider's hosted
page, settles payment events idempotently into orders, and restores stock when
paid orders are cancelled or refunded.
"""

from protean.domain import Domain

storefront = Domain(name="storefront")
