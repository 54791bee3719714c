import os
from typing import Literal

from dotenv import load_dotenv
from pydantic import ConfigDict
from pydantic_settings import BaseSettings

# Load .env file automatically
load_dotenv()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20
    DATABASE_POOL_TIMEOUT: int = 30
    DATABASE_POOL_RECYCLE: int = 3600

    # PayPal gateway
    PAYPAL_CLIENT_ID: str
    PAYPAL_SECRET: str
    PAYPAL_SANDBOX: bool = True
    PAYPAL_CURRENCY: str = "USD"
    PAYPAL_TIMEOUT: float = 30.0
    PAYPAL_TOKEN_CACHE: bool = True
    PAYPAL_IDEMPOTENCY: bool = False

    # Caller-side retry policy, see payments.retry
    PAYMENT_RETRY_ATTEMPTS: int = 3

    # App settings
    APP_NAME: str = "Billing Gateways"
    DEBUG: bool = False
    ENVIRONMENT: Literal["development", "production", "test"] = "development"
    LOG_LEVEL: str = "INFO"

    # Observability (Optional)
    OTEL_EXPORTER_OTLP_ENDPOINT: str = "http://localhost:4317"
    OTEL_SERVICE_NAME: str = "billing-gateways"

    model_config = ConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    def __init__(self, **kwargs):
        # Check for DATABASE_URL before calling parent constructor
        if not os.getenv("DATABASE_URL") and "DATABASE_URL" not in kwargs:
            raise RuntimeError(
                "DATABASE_URL not set; create .env or export the variable"
            )
        super().__init__(**kwargs)
