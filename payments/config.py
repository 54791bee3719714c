"""
PayPal gateway configuration and the config-field surface exposed to the host.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from payments.errors import GatewayConfigurationError

SANDBOX_ENDPOINT = "https://api-m.sandbox.paypal.com"
LIVE_ENDPOINT = "https://api-m.paypal.com"


@dataclass(frozen=True)
class ConfigField:
    """Describes one configuration option a gateway needs from the host."""

    name: str
    label: str
    type: Literal["text", "secret", "boolean"] = "text"
    required: bool = False
    default: Any = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "label": self.label,
            "type": self.type,
            "required": self.required,
            "default": self.default,
        }


PAYPAL_FIELDS = (
    ConfigField("client_id", "Client ID", "text", required=True),
    ConfigField("secret", "App Secret", "secret", required=True),
    ConfigField("sandbox", "Sandbox", "boolean", default=False),
)


class PayPalConfig(BaseModel):
    """Validated, immutable PayPal configuration."""

    client_id: str
    secret: str
    sandbox: bool = False
    currency: str = "USD"
    timeout: float = 30.0

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    @field_validator("client_id", "secret")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("currency")
    @classmethod
    def _currency_code(cls, value: str) -> str:
        value = value.upper()
        if len(value) != 3 or not value.isalpha():
            raise ValueError("must be a three letter ISO 4217 code")
        return value

    @field_validator("timeout")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @property
    def endpoint(self) -> str:
        return SANDBOX_ENDPOINT if self.sandbox else LIVE_ENDPOINT

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any] | None) -> "PayPalConfig":
        """
        Build a config from the loose mapping the host stores per gateway.

        Unknown keys are ignored and a missing or null ``sandbox`` means live.
        """
        config = dict(config or {})
        known = {k: v for k, v in config.items() if k in cls.model_fields}
        if known.get("sandbox") is None:
            known.pop("sandbox", None)
        try:
            return cls(**known)
        except ValidationError as e:
            fields = ", ".join(
                ".".join(str(p) for p in err["loc"]) for err in e.errors()
            )
            raise GatewayConfigurationError(
                f"Invalid PayPal configuration: {fields}"
            ) from e
