"""
Payment gateways

Two-phase (authorize/capture) gateway protocol and its PayPal implementation.
"""

from payments.base import ORDER_ID_KEY, BillingRecord, PaymentGateway
from payments.config import ConfigField, PayPalConfig
from payments.errors import (
    AuthenticationError,
    GatewayConfigurationError,
    GatewayRequestError,
    GatewayTimeoutError,
    InvalidStateError,
    MissingFieldError,
    PaymentGatewayError,
)
from payments.paypal import PayPalGateway

__all__ = [
    "ORDER_ID_KEY",
    "AuthenticationError",
    "BillingRecord",
    "ConfigField",
    "GatewayConfigurationError",
    "GatewayRequestError",
    "GatewayTimeoutError",
    "InvalidStateError",
    "MissingFieldError",
    "PayPalConfig",
    "PayPalGateway",
    "PaymentGateway",
    "PaymentGatewayError",
]
