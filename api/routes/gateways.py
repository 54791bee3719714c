"""
Gateway routes: list registered gateways, their config fields and widget data.
"""

from collections.abc import Callable

from fastapi import APIRouter, Depends, Request

from api.errors import gateway_http_error
from api.schemas import ConfigFieldOut, WidgetOut
from core.dependencies import get_gateway_factory, get_settings
from core.settings import Settings
from payments.base import PaymentGateway
from payments.errors import PaymentGatewayError
from payments.registry import default_registry
from payments.retry import call_with_retry

router = APIRouter()


@router.get("")
def list_gateways():
    return {"gateways": default_registry.names()}


@router.get("/{name}/fields", response_model=list[ConfigFieldOut])
def gateway_fields(
    name: str,
    request: Request,
    gateways: Callable[[str], PaymentGateway] = Depends(get_gateway_factory),
):
    try:
        gateway = gateways(name)
    except PaymentGatewayError as e:
        raise gateway_http_error(e)
    return [f.as_dict() for f in gateway.fields(request)]


@router.get("/{name}/widget", response_model=WidgetOut)
def gateway_widget(
    name: str,
    request: Request,
    gateways: Callable[[str], PaymentGateway] = Depends(get_gateway_factory),
    settings: Settings = Depends(get_settings),
):
    """Client id plus a freshly generated client token for the JS SDK."""
    try:
        gateway = gateways(name)
        # No money moves here, so repeating a failed call is always safe
        return call_with_retry(
            gateway.serialize_for_widget,
            request,
            attempts=settings.PAYMENT_RETRY_ATTEMPTS,
        )
    except PaymentGatewayError as e:
        raise gateway_http_error(e)
