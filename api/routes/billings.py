"""
Billing routes: create billing records and drive them through pay and verify.
"""

from collections.abc import Callable

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from api.errors import gateway_http_error
from api.schemas import BillingCreate, BillingOut, PaymentResponse
from core.dependencies import get_gateway_factory, get_settings
from core.logging import BusinessEvents
from core.settings import Settings
from db.models import Billing, BillingStatus
from db.session import get_db
from payments.base import ORDER_ID_KEY, PaymentGateway
from payments.errors import PaymentGatewayError
from payments.registry import default_registry
from payments.retry import call_with_retry

log = structlog.get_logger(__name__)

router = APIRouter()


def _load_billing(db: Session, identifier: str) -> Billing:
    billing = (
        db.execute(select(Billing).filter(Billing.identifier == identifier))
        .scalars()
        .first()
    )
    if not billing:
        raise HTTPException(status_code=404, detail="Billing not found")
    return billing


def _build_gateway(
    gateways: Callable[[str], PaymentGateway], name: str
) -> PaymentGateway:
    try:
        return gateways(name)
    except PaymentGatewayError as e:
        raise gateway_http_error(e)


def _track(request: Request, db: Session, billing: Billing) -> None:
    # Picked up by AuditMiddleware
    request.state.db = db
    request.state.billing_id = billing.id


@router.post("", status_code=201, response_model=BillingOut)
def create_billing(
    data: BillingCreate, request: Request, db: Session = Depends(get_db)
):
    """
    Create a billing record in `pending` status.

    **Request Example:**
    ```json
    {"identifier": "ORD-1", "amount": "25.00", "currency": "USD", "gateway": "paypal"}
    ```
    """
    if data.gateway not in default_registry:
        raise HTTPException(status_code=422, detail=f"Unknown gateway: {data.gateway}")

    billing = Billing(
        identifier=data.identifier,
        amount_value=data.amount,
        currency=data.currency.upper(),
        gateway=data.gateway.lower(),
        status=BillingStatus.pending,
        payload={},
    )
    db.add(billing)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=409, detail=f"Billing {data.identifier} already exists"
        )
    db.refresh(billing)
    _track(request, db, billing)

    log.info(
        BusinessEvents.BILLING_CREATED,
        billing=billing.identifier,
        amount=str(billing.amount()),
        gateway=billing.gateway,
    )
    return BillingOut.model_validate(billing)


@router.get("/{identifier}", response_model=BillingOut)
def get_billing(identifier: str, db: Session = Depends(get_db)):
    return BillingOut.model_validate(_load_billing(db, identifier))


@router.post("/{identifier}/pay", response_model=PaymentResponse)
def pay_billing(
    identifier: str,
    request: Request,
    db: Session = Depends(get_db),
    gateways: Callable[[str], PaymentGateway] = Depends(get_gateway_factory),
    settings: Settings = Depends(get_settings),
):
    """
    Authorize the billing with its gateway.

    The gateway stores the PSP order id on the billing before this returns.
    Retries are only applied when idempotency keys are enabled, so a repeat
    can never open a second order.
    """
    billing = _load_billing(db, identifier)
    _track(request, db, billing)
    gateway = _build_gateway(gateways, billing.gateway)

    try:
        if settings.PAYPAL_IDEMPOTENCY:
            result = call_with_retry(
                gateway.pay, request, billing, attempts=settings.PAYMENT_RETRY_ATTEMPTS
            )
        else:
            result = gateway.pay(request, billing)
    except PaymentGatewayError as e:
        raise gateway_http_error(e)

    billing.status = BillingStatus.authorized
    db.commit()

    return PaymentResponse(
        identifier=identifier,
        provider=gateway.name,
        status=billing.status,
        order_id=billing.get_payload(ORDER_ID_KEY),
        result=result,
    )


@router.post("/{identifier}/verify", response_model=PaymentResponse)
def verify_billing(
    identifier: str,
    request: Request,
    db: Session = Depends(get_db),
    gateways: Callable[[str], PaymentGateway] = Depends(get_gateway_factory),
    settings: Settings = Depends(get_settings),
):
    """Capture the authorized order and record the capture id on the billing."""
    billing = _load_billing(db, identifier)
    _track(request, db, billing)
    if billing.status == BillingStatus.captured:
        raise HTTPException(
            status_code=409,
            detail=f"Billing {identifier} is already captured as {billing.capture_id}",
        )
    gateway = _build_gateway(gateways, billing.gateway)

    try:
        if settings.PAYPAL_IDEMPOTENCY:
            capture_id = call_with_retry(
                gateway.verify,
                request,
                billing,
                attempts=settings.PAYMENT_RETRY_ATTEMPTS,
            )
        else:
            capture_id = gateway.verify(request, billing)
    except PaymentGatewayError as e:
        raise gateway_http_error(e)

    billing.capture_id = capture_id
    billing.status = BillingStatus.captured
    db.commit()

    return PaymentResponse(
        identifier=identifier,
        provider=gateway.name,
        status=billing.status,
        order_id=billing.get_payload(ORDER_ID_KEY),
        capture_id=capture_id,
    )
