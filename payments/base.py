"""
Gateway contracts shared by every payment provider.

A host treats gateways polymorphically through PaymentGateway and hands them
billing records satisfying BillingRecord. Neither contract requires
inheritance; any class with the right methods qualifies.
"""

from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

from payments.config import ConfigField

ORDER_ID_KEY = "orderId"


@runtime_checkable
class BillingRecord(Protocol):
    """The host's transaction-in-progress, owned by the billing subsystem."""

    def get_identifier(self) -> str: ...

    def amount(self) -> Decimal: ...

    def get_payload(self, key: str, default: Any = None) -> Any: ...

    def set_payload(self, key: str, value: Any) -> "BillingRecord": ...

    def forget_payload(self, key: str) -> "BillingRecord": ...

    def save(self) -> None: ...

    def refresh(self) -> "BillingRecord":
        """Reload durable state so checks never run against a stale copy."""
        ...


@runtime_checkable
class PaymentGateway(Protocol):
    name: str

    def pay(self, request: Any, billing: BillingRecord) -> dict[str, Any]:
        """Authorize: create the PSP order and persist its id on the billing."""
        ...

    def verify(self, request: Any, billing: BillingRecord) -> str:
        """Capture the order created by ``pay`` and return the capture id."""
        ...

    def fields(self, request: Any = None) -> list[ConfigField]: ...

    def serialize_for_widget(self, request: Any = None) -> dict[str, Any]: ...
