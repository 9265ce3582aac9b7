import httpx
import pytest
from decimal import Decimal

from application.services.intent_submitter import PaymentIntentSubmitter, derive_idempotency_key
from domain.common.exceptions import DomainValidationException
from domain.payment.entity import PaymentRequest, Terminal
from domain.payment.exceptions import CommunicationError, InvalidPaymentRequest, ProviderRejection
from infrastructure.external.api_clients.credentialed_gateway import CredentialedGateway
from infrastructure.external.payments.point_intents_client import PointIntentsClient
from tests.fakes import StubGateway


TERMINALS = [Terminal(id="T1", name="Front", location="Punto de Venta")]


def _request(**overrides) -> PaymentRequest:
    data = dict(amount=Decimal("250.00"), description="Order ORD-123", external_reference="ORD-123", terminal_id="T1")
    data.update(overrides)
    return PaymentRequest(**data)


def test_request_rejects_non_positive_amount():
    with pytest.raises(DomainValidationException):
        _request(amount=Decimal("0"))
    with pytest.raises(DomainValidationException):
        _request(amount="-1")


def test_request_rejects_fractions_of_a_cent():
    with pytest.raises(DomainValidationException):
        _request(amount=Decimal("250.005"))
    with pytest.raises(DomainValidationException):
        _request(amount="NaN")
    assert _request(amount=Decimal("250.000")).amount == Decimal("250.00")


@pytest.mark.asyncio
async def test_submit_sends_request_unchanged():
    gw = StubGateway()
    handle = await PaymentIntentSubmitter(gw).submit(_request(), TERMINALS, idempotency_key="k1")

    assert handle.intent_id == "pi_1"
    sent, key = gw.created[0]
    assert sent.amount == Decimal("250.00")
    assert sent.external_reference == "ORD-123"  # full id, never truncated
    assert key == "k1"


@pytest.mark.asyncio
async def test_terminal_must_be_one_of_the_flow_terminals():
    gw = StubGateway()
    with pytest.raises(InvalidPaymentRequest) as ei:
        await PaymentIntentSubmitter(gw).submit(_request(terminal_id="T9"), TERMINALS)
    assert ei.value.field == "terminal_id"
    assert gw.created == []


@pytest.mark.asyncio
async def test_minimum_amount_is_enforced_before_any_call():
    gw = StubGateway()
    submitter = PaymentIntentSubmitter(gw, min_amount=Decimal("5.00"))
    with pytest.raises(InvalidPaymentRequest):
        await submitter.submit(_request(amount=Decimal("4.99")), TERMINALS)
    assert gw.created == []


@pytest.mark.asyncio
async def test_transport_errors_become_communication_error():
    gw = StubGateway(create_error=httpx.ConnectError("connection refused"))
    with pytest.raises(CommunicationError):
        await PaymentIntentSubmitter(gw).submit(_request(), TERMINALS)


@pytest.mark.asyncio
async def test_echo_mismatch_is_a_provider_rejection():
    gw = StubGateway()
    gw.echo_amount = Decimal("25.00")
    with pytest.raises(ProviderRejection) as ei:
        await PaymentIntentSubmitter(gw).submit(_request(), TERMINALS)
    assert "amount" in ei.value.details["mismatches"]
    # the intent was already pushed to the terminal, so it is withdrawn
    assert gw.cancelled == ["pi_1"]


@pytest.mark.asyncio
async def test_mismatched_intent_is_withdrawn_from_the_provider():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append((request.method, request.url.path))
        if request.method == "POST":
            return httpx.Response(201, json={
                "id": "pi_1",
                "device_id": "T1",
                "amount": 2500,
                "additional_info": {"external_reference": "ORD-123"},
            })
        return httpx.Response(200, json={"id": "pi_1"})

    gateway = CredentialedGateway("https://api.example.test", "tok", transport=httpx.MockTransport(handler))
    with pytest.raises(ProviderRejection):
        await PaymentIntentSubmitter(PointIntentsClient(gateway)).submit(_request(), TERMINALS)
    assert calls == [
        ("POST", "/point/integration-api/devices/T1/payment-intents"),
        ("DELETE", "/point/integration-api/payment-intents/pi_1"),
    ]


def test_idempotency_key_is_per_attempt():
    req = _request()
    first = derive_idempotency_key("flow-1", 1, req)
    assert first == derive_idempotency_key("flow-1", 1, req)
    assert first != derive_idempotency_key("flow-1", 2, req)
    assert len(first) == 64
