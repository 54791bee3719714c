"""
Idempotency keys for PSP requests.

When a gateway is given an IdempotencyKeys strategy it sends the key as the
``PayPal-Request-Id`` header, so a repeated create or capture for the same
billing is deduplicated by PayPal instead of creating a second order or
charging twice.
"""

from typing import Protocol

from payments.base import BillingRecord


class IdempotencyKeys(Protocol):
    def for_order(self, billing: BillingRecord) -> str: ...

    def for_capture(self, billing: BillingRecord, order_id: str) -> str: ...


class BillingIdempotencyKeys:
    """Derive stable keys from the billing identifier."""

    def __init__(self, prefix: str = "billing"):
        self.prefix = prefix

    def for_order(self, billing: BillingRecord) -> str:
        return f"{self.prefix}-{billing.get_identifier()}-order"

    def for_capture(self, billing: BillingRecord, order_id: str) -> str:
        return f"{self.prefix}-{billing.get_identifier()}-capture-{order_id}"
