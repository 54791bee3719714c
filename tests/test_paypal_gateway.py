"""
Tests for the PayPal gateway protocol: pay (authorize) and verify (capture).
"""

import threading
import time
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import requests
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from conftest import FakeBilling, MockResponse, StaticTokenProvider, capture_response
from db.models import Base, Billing
from payments.base import ORDER_ID_KEY, BillingRecord, PaymentGateway
from payments.errors import (
    AuthenticationError,
    GatewayRequestError,
    GatewayTimeoutError,
    InvalidStateError,
    MissingFieldError,
)
from payments.idempotency import BillingIdempotencyKeys
from payments.locks import KeyedLocks
from payments.paypal import PayPalGateway
from payments.paypal_client import CaptureResponse, OrderResponse, PayPalClient

CONFIG = {"client_id": "x", "secret": "y", "sandbox": True}


@pytest.fixture
def gateway(token_provider):
    return PayPalGateway(CONFIG, token_provider=token_provider)


def test_gateway_satisfies_host_protocol(gateway, billing):
    assert isinstance(gateway, PaymentGateway)
    assert isinstance(billing, BillingRecord)
    assert gateway.name == "paypal"


@patch("payments.paypal_client.requests.post")
def test_pay_then_verify_scenario(mock_post, gateway, billing):
    mock_post.side_effect = [
        MockResponse(201, {"id": "EC-1", "status": "CREATED"}),
        MockResponse(201, capture_response("CAP-1")),
    ]

    result = gateway.pay(None, billing)

    assert billing.get_payload(ORDER_ID_KEY) == "EC-1"
    assert billing.saves == [{"orderId": "EC-1"}]
    assert result["trackingCode"] == "ORD-1"
    assert result["id"] == "EC-1"
    assert result["status"] == "CREATED"

    assert gateway.verify(None, billing) == "CAP-1"
    assert mock_post.call_args.args[0] == (
        "https://api-m.sandbox.paypal.com/v2/checkout/orders/EC-1/capture"
    )


@patch("payments.paypal_client.requests.post")
def test_pay_with_default_token_provider(mock_post, billing):
    mock_post.side_effect = [
        MockResponse(200, {"access_token": "fresh"}),
        MockResponse(201, {"id": "EC-7"}),
    ]
    gateway = PayPalGateway(CONFIG)

    gateway.pay(None, billing)

    token_call, order_call = mock_post.call_args_list
    assert token_call.args[0] == "https://api-m.sandbox.paypal.com/v1/oauth2/token"
    assert token_call.kwargs["auth"] == ("x", "y")
    assert order_call.kwargs["headers"]["Authorization"] == "Bearer fresh"
    assert billing.get_payload(ORDER_ID_KEY) == "EC-7"


def test_pay_fetches_a_token_per_operation(billing, token_provider):
    client = MagicMock(spec=PayPalClient)
    client.create_order.return_value = OrderResponse("EC-1", {"id": "EC-1"})
    client.capture_order.return_value = CaptureResponse("CAP-1", {})
    gateway = PayPalGateway(CONFIG, token_provider=token_provider, client=client)

    gateway.pay(None, billing)
    gateway.verify(None, billing)

    assert token_provider.calls == 2
    client.create_order.assert_called_once_with(
        "test_token", Decimal("25.00"), "USD", "ORD-1", request_id=None
    )
    client.capture_order.assert_called_once_with("test_token", "EC-1", request_id=None)


def test_pay_uses_configured_currency(token_provider):
    client = MagicMock(spec=PayPalClient)
    client.create_order.return_value = OrderResponse("EC-1", {"id": "EC-1"})
    gateway = PayPalGateway(
        {**CONFIG, "currency": "EUR"}, token_provider=token_provider, client=client
    )

    gateway.pay(None, FakeBilling(currency="eur"))

    assert client.create_order.call_args.args[2] == "EUR"


@patch("payments.paypal_client.requests.post")
def test_pay_rejected_leaves_payload_untouched(mock_post, gateway):
    billing = FakeBilling(payload={"note": "keep"})
    mock_post.return_value = MockResponse(400, {"name": "INVALID_REQUEST"})

    with pytest.raises(GatewayRequestError) as exc_info:
        gateway.pay(None, billing)

    assert exc_info.value.status_code == 400
    assert billing.payload == {"note": "keep"}
    assert billing.saves == []


@patch("payments.paypal_client.requests.post")
def test_pay_timeout_leaves_payload_untouched(mock_post, gateway, billing):
    mock_post.side_effect = requests.Timeout("deadline exceeded")

    with pytest.raises(GatewayTimeoutError):
        gateway.pay(None, billing)

    assert billing.payload == {}
    assert billing.saves == []


def test_pay_token_failure_propagates_without_order(billing):
    class RejectingProvider:
        def token(self):
            raise AuthenticationError("Token exchange rejected", status_code=401)

    client = MagicMock(spec=PayPalClient)
    gateway = PayPalGateway(CONFIG, token_provider=RejectingProvider(), client=client)

    with pytest.raises(AuthenticationError):
        gateway.pay(None, billing)

    client.create_order.assert_not_called()
    assert billing.payload == {}
    assert billing.saves == []


@patch("payments.paypal_client.requests.post")
def test_pay_persist_failure_rolls_back_payload(mock_post, gateway):
    billing = FakeBilling(fail_save=True)
    mock_post.return_value = MockResponse(201, {"id": "EC-1"})

    with pytest.raises(RuntimeError):
        gateway.pay(None, billing)

    assert ORDER_ID_KEY not in billing.payload


@patch("payments.paypal_client.requests.post")
def test_pay_refuses_already_authorized_billing(mock_post, gateway):
    billing = FakeBilling(payload={ORDER_ID_KEY: "EC-1"})

    with pytest.raises(InvalidStateError):
        gateway.pay(None, billing)

    mock_post.assert_not_called()
    assert billing.payload == {ORDER_ID_KEY: "EC-1"}


@pytest.mark.parametrize(
    "amount",
    [
        Decimal("0"),
        Decimal("-5.00"),
        Decimal("0.004"),
        Decimal("Infinity"),
        Decimal("NaN"),
        None,
        "abc",
    ],
)
@patch("payments.paypal_client.requests.post")
def test_pay_refuses_non_positive_amount(mock_post, amount, gateway):
    with pytest.raises(InvalidStateError):
        gateway.pay(None, FakeBilling(amount=amount))
    mock_post.assert_not_called()


@patch("payments.paypal_client.requests.post")
def test_pay_refuses_missing_identifier(mock_post, gateway):
    with pytest.raises(InvalidStateError):
        gateway.pay(None, FakeBilling(identifier=""))
    mock_post.assert_not_called()


@patch("payments.paypal_client.requests.post")
def test_verify_before_pay_is_invalid_state_without_network(mock_post, billing):
    token_provider = StaticTokenProvider()
    gateway = PayPalGateway(CONFIG, token_provider=token_provider)

    with pytest.raises(InvalidStateError) as exc_info:
        gateway.verify(None, billing)

    assert "before authorization" in str(exc_info.value)
    mock_post.assert_not_called()
    assert token_provider.calls == 0


@patch("payments.paypal_client.requests.post")
def test_verify_missing_capture_id_is_typed_error(mock_post, gateway):
    billing = FakeBilling(payload={ORDER_ID_KEY: "EC-1"})
    mock_post.return_value = MockResponse(201, {"id": "EC-1", "status": "COMPLETED"})

    with pytest.raises(MissingFieldError):
        gateway.verify(None, billing)

    assert billing.payload == {ORDER_ID_KEY: "EC-1"}


@patch("payments.paypal_client.requests.post")
def test_verify_rejected_leaves_payload_untouched(mock_post, gateway):
    billing = FakeBilling(payload={ORDER_ID_KEY: "EC-1"})
    mock_post.return_value = MockResponse(
        422, {"name": "UNPROCESSABLE_ENTITY", "details": [{"issue": "ORDER_ALREADY_CAPTURED"}]}
    )

    with pytest.raises(GatewayRequestError) as exc_info:
        gateway.verify(None, billing)

    assert exc_info.value.body["details"][0]["issue"] == "ORDER_ALREADY_CAPTURED"
    assert billing.payload == {ORDER_ID_KEY: "EC-1"}
    assert billing.saves == []


@patch("payments.paypal_client.requests.post")
def test_idempotency_keys_are_sent(mock_post, token_provider, billing):
    gateway = PayPalGateway(
        CONFIG, token_provider=token_provider, idempotency=BillingIdempotencyKeys()
    )
    mock_post.side_effect = [
        MockResponse(201, {"id": "EC-1"}),
        MockResponse(201, capture_response("CAP-1")),
    ]

    gateway.pay(None, billing)
    gateway.verify(None, billing)

    order_call, capture_call = mock_post.call_args_list
    assert order_call.kwargs["headers"]["PayPal-Request-Id"] == "billing-ORD-1-order"
    assert (
        capture_call.kwargs["headers"]["PayPal-Request-Id"]
        == "billing-ORD-1-capture-EC-1"
    )


@patch("payments.paypal_client.requests.post")
def test_serialize_for_widget_generates_fresh_token(mock_post, gateway):
    mock_post.side_effect = [
        MockResponse(200, {"client_token": "ct-1"}),
        MockResponse(200, {"client_token": "ct-2"}),
    ]

    assert gateway.serialize_for_widget(None) == {"clientId": "x", "clientToken": "ct-1"}
    assert gateway.serialize_for_widget(None) == {"clientId": "x", "clientToken": "ct-2"}
    assert mock_post.call_count == 2


def test_generate_access_token_uses_injected_provider():
    provider = StaticTokenProvider("injected")
    gateway = PayPalGateway(CONFIG, token_provider=provider)
    assert gateway.generate_access_token() == "injected"


def test_concurrent_pay_with_locks_creates_one_order(token_provider):
    billing = FakeBilling()
    created = []

    def create_order(*args, **kwargs):
        created.append(args)
        return OrderResponse(f"EC-{len(created)}", {})

    client = MagicMock(spec=PayPalClient)
    client.create_order.side_effect = create_order
    gateway = PayPalGateway(
        CONFIG, token_provider=token_provider, client=client, locks=KeyedLocks()
    )

    errors = []

    def run():
        try:
            gateway.pay(None, billing)
        except InvalidStateError as e:
            errors.append(e)

    threads = [threading.Thread(target=run) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(created) == 1
    assert len(errors) == 3
    assert billing.get_payload(ORDER_ID_KEY) == "EC-1"


@patch("payments.paypal_client.requests.post")
def test_pay_refuses_currency_mismatch(mock_post, gateway):
    billing = FakeBilling(currency="EUR")

    with pytest.raises(InvalidStateError) as exc_info:
        gateway.pay(None, billing)

    assert "EUR" in str(exc_info.value)
    mock_post.assert_not_called()
    assert billing.payload == {}


def test_pay_sends_amount_rounded_to_cents(token_provider):
    client = MagicMock(spec=PayPalClient)
    client.create_order.return_value = OrderResponse("EC-1", {})
    gateway = PayPalGateway(CONFIG, token_provider=token_provider, client=client)

    gateway.pay(None, FakeBilling(amount=Decimal("0.005")))

    assert client.create_order.call_args.args[1] == Decimal("0.01")


def test_pay_and_verify_reload_billing_under_lock(token_provider):
    client = MagicMock(spec=PayPalClient)
    client.create_order.return_value = OrderResponse("EC-1", {})
    client.capture_order.return_value = CaptureResponse("CAP-1", {})
    gateway = PayPalGateway(CONFIG, token_provider=token_provider, client=client)
    billing = FakeBilling()

    gateway.pay(None, billing)
    gateway.verify(None, billing)

    assert billing.refreshes == 2


def test_concurrent_pay_from_separate_sessions_creates_one_order(
    tmp_path, token_provider
):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'billings.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)
    with Session() as setup:
        setup.add(Billing(identifier="ORD-1", amount_value=Decimal("25.00"), payload={}))
        setup.commit()

    # Each request loads its own copy of the row before the lock is taken
    sessions = [Session(), Session()]
    billings = [s.query(Billing).filter_by(identifier="ORD-1").one() for s in sessions]

    created = []

    def create_order(*args, **kwargs):
        created.append(args)
        time.sleep(0.2)
        return OrderResponse(f"EC-{len(created)}", {})

    client = MagicMock(spec=PayPalClient)
    client.create_order.side_effect = create_order
    gateway = PayPalGateway(
        CONFIG, token_provider=token_provider, client=client, locks=KeyedLocks()
    )

    refused = []

    def run(billing):
        try:
            gateway.pay(None, billing)
        except InvalidStateError as e:
            refused.append(e)

    threads = [threading.Thread(target=run, args=(b,)) for b in billings]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    for s in sessions:
        s.close()

    assert len(created) == 1
    assert len(refused) == 1
    with Session() as check:
        stored = check.query(Billing).filter_by(identifier="ORD-1").one()
        assert stored.get_payload(ORDER_ID_KEY) == "EC-1"
    engine.dispose()
