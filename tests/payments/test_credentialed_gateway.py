import json

import httpx
import pytest

from domain.payment.exceptions import CommunicationError, ConfigurationError
from infrastructure.external.api_clients.credentialed_gateway import CredentialedGateway


def _gateway(handler, token="APP_USR-123", **kwargs) -> CredentialedGateway:
    return CredentialedGateway(
        "https://api.example.test/",
        token,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_forward_injects_credential_and_passthrough_headers():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": "pi_1"})

    gw = _gateway(handler)
    resp = await gw.forward(
        "POST",
        "/point/integration-api/devices/T1/payment-intents",
        headers={"x-idempotency-key": "k1", "x-request-id": "r1", "Cookie": "secret"},
        body={"amount": 25000},
    )
    await gw.aclose()

    assert resp.status_code == 201
    assert resp.data == {"id": "pi_1"}
    assert seen["url"] == "https://api.example.test/point/integration-api/devices/T1/payment-intents"
    assert seen["headers"]["authorization"] == "Bearer APP_USR-123"
    assert seen["headers"]["x-idempotency-key"] == "k1"
    assert seen["headers"]["x-request-id"] == "r1"
    assert "cookie" not in seen["headers"]
    assert seen["body"] == {"amount": 25000}


@pytest.mark.asyncio
async def test_upstream_errors_pass_through_unchanged():
    gw = _gateway(lambda request: httpx.Response(404, json={"message": "device not found"}))
    resp = await gw.forward("GET", "/point/integration-api/devices/nope")
    assert resp.status_code == 404
    assert resp.data == {"message": "device not found"}


@pytest.mark.asyncio
async def test_get_never_sends_a_body():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["content"] = request.content
        return httpx.Response(200, json={})

    await _gateway(handler).forward("GET", "/v1/orders/1", body={"ignored": True})
    assert seen["content"] == b""


@pytest.mark.asyncio
async def test_empty_body_is_null():
    resp = await _gateway(lambda request: httpx.Response(204)).forward("DELETE", "/point/integration-api/payment-intents/1")
    assert resp.status_code == 204
    assert resp.data is None


@pytest.mark.asyncio
async def test_missing_credential_makes_no_upstream_call():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={})

    with pytest.raises(ConfigurationError):
        await _gateway(handler, token=None).forward("GET", "/point/integration-api/devices")
    assert calls == []


@pytest.mark.asyncio
async def test_transport_failure_and_non_json_are_communication_errors():
    def refuse(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(CommunicationError):
        await _gateway(refuse).forward("GET", "/point/integration-api/devices")

    with pytest.raises(CommunicationError) as ei:
        await _gateway(lambda r: httpx.Response(502, text="<html>bad gateway</html>")).forward("GET", "/x")
    assert ei.value.status_code == 502
