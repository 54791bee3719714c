"""
Gateway registry

Maps gateway names to factories so the host can build any registered
gateway from its stored configuration mapping.
"""

from collections.abc import Callable, Mapping
from typing import Any

import structlog

from core.settings import Settings
from payments.base import PaymentGateway
from payments.config import PayPalConfig
from payments.errors import GatewayConfigurationError
from payments.idempotency import BillingIdempotencyKeys
from payments.locks import KeyedLocks
from payments.paypal import PayPalGateway
from payments.tokens import CachingTokenProvider, ClientCredentialsTokenProvider

log = structlog.get_logger(__name__)

GatewayFactory = Callable[[Mapping[str, Any]], PaymentGateway]


class GatewayRegistry:
    def __init__(self):
        self._factories: dict[str, GatewayFactory] = {}

    def register(self, name: str, factory: GatewayFactory) -> None:
        self._factories[name.lower()] = factory

    def names(self) -> list[str]:
        return sorted(self._factories)

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._factories

    def create(self, name: str, config: Mapping[str, Any] | None = None) -> PaymentGateway:
        factory = self._factories.get((name or "").lower())
        if factory is None:
            raise GatewayConfigurationError(f"Unknown gateway: {name}")
        return factory(config or {})


default_registry = GatewayRegistry()
default_registry.register("paypal", PayPalGateway)

# One lock table per process so every gateway instance shares it
_locks = KeyedLocks()
_token_caches: dict[tuple[str, str], CachingTokenProvider] = {}


def _token_provider(config: PayPalConfig, cached: bool):
    provider = ClientCredentialsTokenProvider(
        config.client_id, config.secret, config.endpoint, timeout=config.timeout
    )
    if not cached:
        return provider
    key = (config.endpoint, config.client_id)
    cache = _token_caches.get(key)
    if cache is None or cache.inner.secret != config.secret:
        cache = _token_caches[key] = CachingTokenProvider(provider)
    return cache


def clear_token_caches() -> None:
    """Forget every cached PayPal token. Used by tests and on credential rotation."""
    _token_caches.clear()


def build_paypal_gateway(settings: Settings) -> PayPalGateway:
    """Assemble a PayPal gateway from application settings."""
    config = PayPalConfig.from_mapping(
        {
            "client_id": settings.PAYPAL_CLIENT_ID,
            "secret": settings.PAYPAL_SECRET,
            "sandbox": settings.PAYPAL_SANDBOX,
            "currency": settings.PAYPAL_CURRENCY,
            "timeout": settings.PAYPAL_TIMEOUT,
        }
    )
    token_provider = _token_provider(config, cached=settings.PAYPAL_TOKEN_CACHE)

    idempotency = BillingIdempotencyKeys() if settings.PAYPAL_IDEMPOTENCY else None
    log.debug(
        "gateway.built",
        provider="paypal",
        sandbox=config.sandbox,
        token_cache=settings.PAYPAL_TOKEN_CACHE,
        idempotency=settings.PAYPAL_IDEMPOTENCY,
    )
    return PayPalGateway(
        config, token_provider=token_provider, idempotency=idempotency, locks=_locks
    )


def get_gateway(name: str, settings: Settings) -> PaymentGateway:
    """Return the gateway configured for this service."""
    if (name or "").lower() == "paypal":
        return build_paypal_gateway(settings)
    return default_registry.create(name)
