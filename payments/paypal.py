"""
PayPal Payment Gateway

This module drives the two-phase PayPal checkout for a billing record:
- pay: fetch a token, create a CAPTURE order, persist its id on the billing
- verify: fetch a token, capture the persisted order, return the capture id
- fields / serialize_for_widget: the configuration and JS SDK surface

Nothing here retries. Failures propagate to the caller, and the billing
payload is only written once the PSP has accepted the order.
"""

from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from typing import Any

import structlog

from core.logging import BusinessEvents
from core.metrics import payment_attempts, payment_failure, payment_success
from payments.base import ORDER_ID_KEY, BillingRecord
from payments.config import PAYPAL_FIELDS, ConfigField, PayPalConfig
from payments.errors import InvalidStateError, PaymentGatewayError
from payments.idempotency import IdempotencyKeys
from payments.locks import BillingLocks, NullLocks
from payments.paypal_client import PayPalClient, format_amount
from payments.tokens import ClientCredentialsTokenProvider, TokenProvider

log = structlog.get_logger(__name__)


class PayPalGateway:
    name = "paypal"

    def __init__(
        self,
        config: PayPalConfig | Mapping[str, Any],
        token_provider: TokenProvider | None = None,
        client: PayPalClient | None = None,
        idempotency: IdempotencyKeys | None = None,
        locks: BillingLocks | None = None,
    ):
        if not isinstance(config, PayPalConfig):
            config = PayPalConfig.from_mapping(config)
        self.config = config
        self.token_provider = token_provider or ClientCredentialsTokenProvider(
            config.client_id, config.secret, config.endpoint, timeout=config.timeout
        )
        self.client = client or PayPalClient(config.endpoint, timeout=config.timeout)
        self.idempotency = idempotency
        self.locks = locks or NullLocks()

    def pay(self, request: Any, billing: BillingRecord) -> dict[str, Any]:
        """
        Authorize the billing by creating a PayPal order.

        The order id is stored in the billing payload as ``orderId`` and the
        billing is saved before returning. The billing is reloaded under the
        per-billing lock, and one that already carries an ``orderId`` is
        refused, so a second ``pay`` cannot open a second order. A billing
        whose ``currency`` differs from the configured one is refused too.

        Returns:
            The PayPal order response merged with ``trackingCode``.
        """
        identifier = billing.get_identifier()
        with self.locks.hold(identifier or ""):
            # Another session may have authorized this billing while we waited
            billing.refresh()
            amount = self._payable_amount(billing, identifier)

            log.info(
                BusinessEvents.PAYMENT_ATTEMPT,
                billing=identifier,
                amount=str(amount),
                provider=self.name,
                operation="pay",
            )
            payment_attempts.labels(provider=self.name, operation="pay").inc()

            request_id = self.idempotency.for_order(billing) if self.idempotency else None
            try:
                order = self.client.create_order(
                    self.generate_access_token(),
                    amount,
                    self.config.currency,
                    identifier,
                    request_id=request_id,
                )
            except PaymentGatewayError as e:
                self._failed("pay", identifier, e)
                raise

            self._persist_order(billing, order.order_id)

        payment_success.labels(provider=self.name, operation="pay").inc()
        log.info(
            BusinessEvents.PAYMENT_AUTHORIZED,
            billing=identifier,
            order_id=order.order_id,
            provider=self.name,
        )
        return {**order.raw, "trackingCode": identifier}

    def verify(self, request: Any, billing: BillingRecord) -> str:
        """Capture the order created by ``pay`` and return the capture id."""
        identifier = billing.get_identifier()
        with self.locks.hold(identifier or ""):
            billing.refresh()
            order_id = billing.get_payload(ORDER_ID_KEY)
            if not order_id:
                raise InvalidStateError(
                    f"Billing {identifier}: capture attempted before authorization"
                )

            log.info(
                BusinessEvents.PAYMENT_ATTEMPT,
                billing=identifier,
                order_id=order_id,
                provider=self.name,
                operation="verify",
            )
            payment_attempts.labels(provider=self.name, operation="verify").inc()

            request_id = (
                self.idempotency.for_capture(billing, order_id)
                if self.idempotency
                else None
            )
            try:
                capture = self.client.capture_order(
                    self.generate_access_token(), order_id, request_id=request_id
                )
            except PaymentGatewayError as e:
                self._failed("verify", identifier, e, order_id=order_id)
                raise

        payment_success.labels(provider=self.name, operation="verify").inc()
        log.info(
            BusinessEvents.PAYMENT_CAPTURED,
            billing=identifier,
            order_id=order_id,
            capture_id=capture.capture_id,
            provider=self.name,
        )
        return capture.capture_id

    def fields(self, request: Any = None) -> list[ConfigField]:
        return list(PAYPAL_FIELDS)

    def serialize_for_widget(self, request: Any = None) -> dict[str, Any]:
        return {
            "clientId": self.client_id(),
            "clientToken": self.generate_client_token(request),
        }

    def generate_client_token(self, request: Any = None) -> str:
        return self.client.generate_client_token(self.generate_access_token())

    def generate_access_token(self) -> str:
        return self.token_provider.token()

    def request_endpoint(self) -> str:
        return self.config.endpoint

    def client_id(self) -> str:
        return self.config.client_id

    def secret(self) -> str:
        return self.config.secret

    def _payable_amount(self, billing: BillingRecord, identifier: str) -> Decimal:
        """Validate the billing for a new order and return the amount in cents."""
        if not identifier:
            raise InvalidStateError("Billing has no identifier")
        raw = billing.amount()
        try:
            amount = Decimal(format_amount(raw))
        except (InvalidOperation, ValueError, TypeError):
            amount = None
        # Checked after rounding: 0.004 would otherwise be sent as 0.00
        if amount is None or not amount.is_finite() or amount <= 0:
            raise InvalidStateError(
                f"Billing {identifier}: amount must be at least one cent, got {raw!r}"
            )
        currency = getattr(billing, "currency", None)
        if currency and str(currency).upper() != self.config.currency:
            raise InvalidStateError(
                f"Billing {identifier} is in {currency} but this gateway "
                f"charges {self.config.currency}"
            )
        existing = billing.get_payload(ORDER_ID_KEY)
        if existing:
            raise InvalidStateError(
                f"Billing {identifier} is already authorized as order {existing}"
            )
        return amount

    def _persist_order(self, billing: BillingRecord, order_id: str) -> None:
        billing.set_payload(ORDER_ID_KEY, order_id)
        try:
            billing.save()
        except Exception as e:
            billing.forget_payload(ORDER_ID_KEY)
            # The PSP order exists but no billing points at it
            log.error(
                "payment.persist_failed",
                billing=billing.get_identifier(),
                order_id=order_id,
                provider=self.name,
                error=str(e),
            )
            payment_failure.labels(
                provider=self.name, operation="pay", error=type(e).__name__
            ).inc()
            raise

    def _failed(
        self, operation: str, identifier: str, error: PaymentGatewayError, **extra
    ) -> None:
        payment_failure.labels(
            provider=self.name, operation=operation, error=type(error).__name__
        ).inc()
        log.error(
            BusinessEvents.PAYMENT_FAILURE,
            billing=identifier,
            provider=self.name,
            operation=operation,
            status=getattr(error, "status_code", None),
            error=str(error),
            **extra,
        )
