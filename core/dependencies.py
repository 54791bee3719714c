from core.settings import Settings
from payments.base import PaymentGateway
from payments.registry import get_gateway

# Settings singleton
_settings = None


def get_settings() -> Settings:
    """Dependency that provides application settings."""
    if _settings is None:
        init_settings()
    return _settings


def init_settings():
    """Initialize settings singleton."""
    global _settings
    _settings = Settings()


def clear_settings():
    """Clear settings singleton."""
    global _settings
    _settings = None


def get_gateway_factory():
    """Dependency returning ``name -> PaymentGateway``; overridden in tests."""
    settings = get_settings()

    def factory(name: str) -> PaymentGateway:
        return get_gateway(name, settings)

    return factory
