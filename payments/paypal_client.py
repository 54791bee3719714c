"""
PayPal REST client

Thin wrapper over the PayPal Orders and Identity APIs:
- Order creation (intent CAPTURE)
- Order capture
- Client token generation for the JS SDK widget

The client is bound to one base URL and never retries; every failure is
raised as a GatewayRequestError subclass for the caller to handle.
"""

import time
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import requests
import structlog
from opentelemetry import trace

from core.metrics import psp_latency
from payments.errors import GatewayRequestError, GatewayTimeoutError, MissingFieldError

log = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

ORDERS_PATH = "/v2/checkout/orders"
CLIENT_TOKEN_PATH = "/v1/identity/generate-token"
CAPTURE_ID_PATH = "purchase_units.0.payments.captures.0.id"

_MISSING = object()


def dig(data: Any, path: str, default: Any = None) -> Any:
    """
    Walk a dotted path through nested dicts and lists.

    Numeric segments index lists. Absent keys, short lists and unexpected
    types all yield ``default`` instead of raising.
    """
    current = data
    for part in path.split("."):
        if isinstance(current, dict):
            current = current.get(part, _MISSING)
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else _MISSING
        else:
            return default
        if current is _MISSING:
            return default
    return current


def format_amount(amount: Decimal) -> str:
    return str(Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class OrderResponse:
    order_id: str
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CaptureResponse:
    capture_id: str
    raw: dict[str, Any] = field(default_factory=dict)


class PayPalClient:
    def __init__(
        self,
        endpoint: str,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self.session = session

    def create_order(
        self,
        access_token: str,
        amount: Decimal,
        currency: str,
        reference_id: str,
        request_id: str | None = None,
    ) -> OrderResponse:
        """Create a CAPTURE-intent order with a single purchase unit."""
        body = {
            "intent": "CAPTURE",
            "reference_id": reference_id,
            "purchase_units": [
                {
                    "reference_id": reference_id,
                    "amount": {
                        "value": format_amount(amount),
                        "currency_code": currency,
                    },
                }
            ],
        }
        status, data = self._post(
            "create_order",
            ORDERS_PATH,
            access_token,
            json=body,
            request_id=request_id,
        )
        order_id = dig(data, "id")
        if not order_id:
            raise MissingFieldError("id", status_code=status, body=data)
        return OrderResponse(order_id=str(order_id), raw=data)

    def capture_order(
        self, access_token: str, order_id: str, request_id: str | None = None
    ) -> CaptureResponse:
        """Capture an approved order and return the nested capture id."""
        status, data = self._post(
            "capture_order",
            f"{ORDERS_PATH}/{order_id}/capture",
            access_token,
            request_id=request_id,
        )
        capture_id = dig(data, CAPTURE_ID_PATH)
        if not capture_id:
            raise MissingFieldError(CAPTURE_ID_PATH, status_code=status, body=data)
        return CaptureResponse(capture_id=str(capture_id), raw=data)

    def generate_client_token(self, access_token: str) -> str:
        status, data = self._post(
            "generate_client_token",
            CLIENT_TOKEN_PATH,
            access_token,
            headers={"Accept-Language": "en_US"},
        )
        token = dig(data, "client_token")
        if not token:
            raise MissingFieldError("client_token", status_code=status, body=data)
        return token

    def _post(
        self,
        operation: str,
        path: str,
        access_token: str,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        request_id: str | None = None,
    ) -> tuple[int, dict[str, Any]]:
        url = f"{self.endpoint}{path}"
        request_headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if request_id:
            request_headers["PayPal-Request-Id"] = request_id
        if headers:
            request_headers.update(headers)

        post = self.session.post if self.session else requests.post
        started = time.perf_counter()
        with tracer.start_as_current_span(f"paypal.{operation}") as span:
            span.set_attribute("http.url", url)
            try:
                r = post(url, json=json, headers=request_headers, timeout=self.timeout)
            except requests.Timeout as e:
                log.error("paypal.request_timeout", operation=operation, url=url)
                raise GatewayTimeoutError(
                    f"PayPal {operation} timed out after {self.timeout}s"
                ) from e
            except requests.RequestException as e:
                log.error(
                    "paypal.request_failed", operation=operation, url=url, error=str(e)
                )
                raise GatewayRequestError(f"PayPal {operation} failed: {e}") from e
            finally:
                psp_latency.labels(provider="paypal", operation=operation).observe(
                    time.perf_counter() - started
                )

            span.set_attribute("http.status_code", r.status_code)

        if not 200 <= r.status_code < 300:
            log.error(
                "paypal.request_rejected",
                operation=operation,
                status=r.status_code,
                body=r.text[:500],
            )
            raise GatewayRequestError(
                f"PayPal {operation} was rejected",
                status_code=r.status_code,
                body=_body(r),
            )

        try:
            data = r.json()
        except ValueError as e:
            raise GatewayRequestError(
                f"PayPal {operation} returned a non-JSON body",
                status_code=r.status_code,
                body=r.text,
            ) from e
        if not isinstance(data, dict):
            raise GatewayRequestError(
                f"PayPal {operation} returned an unexpected body",
                status_code=r.status_code,
                body=data,
            )
        return r.status_code, data


def _body(r: requests.Response) -> Any:
    try:
        return r.json()
    except ValueError:
        return r.text
