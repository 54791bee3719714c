"""
Gateway error taxonomy.

Every failure raised by a gateway, its token provider or its REST client
derives from PaymentGatewayError so callers can catch the whole family.
"""

from typing import Any


class PaymentGatewayError(Exception):
    pass


class GatewayConfigurationError(PaymentGatewayError):
    """Raised when a gateway is built from an invalid or unknown configuration."""


class AuthenticationError(PaymentGatewayError):
    """Raised when the client-credentials token exchange fails."""

    def __init__(
        self, message: str, status_code: int | None = None, body: Any = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        return _with_context(self.args[0], self.status_code, self.body)


class GatewayRequestError(PaymentGatewayError):
    """Raised when a PSP call fails or answers without the expected data."""

    def __init__(
        self, message: str, status_code: int | None = None, body: Any = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    @property
    def retryable(self) -> bool:
        # No status means the request never got an answer
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500

    def __str__(self) -> str:
        return _with_context(self.args[0], self.status_code, self.body)


class GatewayTimeoutError(GatewayRequestError):
    """Raised when a PSP call exceeds its deadline."""

    @property
    def retryable(self) -> bool:
        return True


class MissingFieldError(GatewayRequestError):
    """Raised when a successful PSP response lacks a required field."""

    def __init__(self, path: str, status_code: int | None = None, body: Any = None):
        super().__init__(
            f"PSP response is missing '{path}'", status_code=status_code, body=body
        )
        self.path = path

    @property
    def retryable(self) -> bool:
        return False


class InvalidStateError(PaymentGatewayError):
    """Raised when an operation is invoked without its prerequisite state."""


def _with_context(message: str, status_code: int | None, body: Any) -> str:
    parts = [message]
    if status_code is not None:
        parts.append(f"status={status_code}")
    if body:
        parts.append(f"body={body}")
    return " | ".join(parts)
