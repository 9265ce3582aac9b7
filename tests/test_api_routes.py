import time

import httpx
import pytest
from fastapi.testclient import TestClient

from core.settings import PaymentSettings
from main import create_app


DEVICE_ID = "PAX_A910__SMARTPOS1"


def _provider(request: httpx.Request) -> httpx.Response:
    """Minimal stand-in for the provider's Point API."""
    path = request.url.path
    if request.method == "GET" and path == "/point/integration-api/devices":
        return httpx.Response(200, json={"devices": [{"id": DEVICE_ID, "operating_mode": "PDV"}]})
    if request.method == "POST" and path.endswith("/payment-intents"):
        return httpx.Response(201, json={
            "id": "pi_1",
            "device_id": DEVICE_ID,
            "amount": 25000,
            "additional_info": {"external_reference": "ORD-123"},
        })
    if request.method == "GET" and path == "/point/integration-api/payment-intents/pi_1":
        return httpx.Response(200, json={
            "id": "pi_1",
            "state": "FINISHED",
            "payment": {"id": 987, "status": "approved"},
        })
    return httpx.Response(404, json={"message": "not found"})


def _settings(token="tok") -> PaymentSettings:
    return PaymentSettings(
        provider={"access_token": token},
        polling={"interval_seconds": 0.01, "timeout_seconds": 5},
        terminals={"names": {DEVICE_ID: "Front counter"}},
    )


@pytest.fixture
def client():
    app = create_app(_settings(), transport=httpx.MockTransport(_provider))
    with TestClient(app) as c:
        yield c


def _wait_for_state(client, flow_id, state, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        view = client.get(f"/api/v1/payments/flows/{flow_id}").json()["data"]
        if view["state"] == state:
            return view
        time.sleep(0.01)
    raise AssertionError(f"flow never reached {state}, last view: {view}")


def test_routes_registered():
    app = create_app(_settings())
    routes = {r.path for r in app.routes}
    assert "/api/v1/payments/terminals" in routes
    assert "/api/v1/payments/flows" in routes
    assert "/api/v1/payments/flows/{flow_id}/{action}" in routes
    assert "/api/v1/ws/flows/{flow_id}" in routes
    assert "/api/mercadopago/{path:path}" in routes


def test_proxy_passes_upstream_through(client):
    resp = client.get("/api/mercadopago/point/integration-api/devices")
    assert resp.status_code == 200
    assert resp.json()["devices"][0]["id"] == DEVICE_ID

    missing = client.get("/api/mercadopago/v1/orders/nope")
    assert missing.status_code == 404
    assert missing.json() == {"message": "not found"}


def test_proxy_without_credential_is_a_local_error():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={})

    app = create_app(_settings(token=None), transport=httpx.MockTransport(handler))
    with TestClient(app) as c:
        resp = c.get("/api/mercadopago/point/integration-api/devices")
    assert resp.status_code == 500
    assert "error" in resp.json()
    assert calls == []


def test_list_terminals(client):
    resp = client.get("/api/v1/payments/terminals")
    assert resp.status_code == 200
    terminals = resp.json()["data"]
    assert terminals == [{
        "id": DEVICE_ID,
        "name": "Front counter",
        "location": "Punto de Venta",
        "enabled": True,
        "operating_mode": "PDV",
    }]


def test_flow_happy_path(client):
    opened = client.post("/api/v1/payments/flows", json={"order_id": "ORD-123", "amount": "250.00"})
    assert opened.status_code == 200
    view = opened.json()["data"]
    assert view["state"] == "SelectTerminal"
    assert [t["id"] for t in view["terminals"]] == [DEVICE_ID]
    flow_id = view["flow_id"]

    selected = client.post(f"/api/v1/payments/flows/{flow_id}/select", json={"terminal_id": DEVICE_ID})
    assert selected.json()["data"]["state"] == "Initial"

    started = client.post(f"/api/v1/payments/flows/{flow_id}/start")
    assert started.json()["data"]["state"] in ("Sending", "Processing", "Success")

    view = _wait_for_state(client, flow_id, "Success")
    assert view["outcome"]["status"] == "APPROVED"
    assert view["outcome"]["payment_id"] == "987"

    client.post(f"/api/v1/payments/flows/{flow_id}/confirm")
    closed = client.post(f"/api/v1/payments/flows/{flow_id}/finalize")
    assert closed.json()["data"]["state"] == "Closed"


def test_flow_errors_map_to_http_status(client):
    assert client.get("/api/v1/payments/flows/missing").status_code == 404

    flow_id = client.post(
        "/api/v1/payments/flows", json={"order_id": "ORD-9", "amount": "10", "session_id": "till-2"},
    ).json()["data"]["flow_id"]
    # starting before a terminal is chosen is not a valid transition
    assert client.post(f"/api/v1/payments/flows/{flow_id}/start").status_code == 409
    # one open flow per session
    again = client.post("/api/v1/payments/flows", json={"order_id": "ORD-10", "amount": "10", "session_id": "till-2"})
    assert again.status_code == 409


def test_flow_stream_sends_current_view_once(client):
    flow_id = client.post(
        "/api/v1/payments/flows", json={"order_id": "ORD-123", "amount": "250.00", "session_id": "ws"},
    ).json()["data"]["flow_id"]

    with client.websocket_connect(f"/api/v1/ws/flows/{flow_id}") as ws:
        first = ws.receive_json()
        assert first["type"] == "flow_view"
        assert first["data"]["state"] == "SelectTerminal"

        ws.send_json({"action": "select_terminal", "terminal_id": DEVICE_ID})
        # the next frame is the change, not a repeat of the first view
        update = ws.receive_json()
        assert update["data"]["state"] == "Initial"

        ws.send_json({"action": "launch"})
        error = ws.receive_json()
        assert error["type"] == "error"


def test_amount_below_a_cent_is_rejected_before_any_provider_call(client):
    resp = client.post(
        "/api/v1/payments/flows",
        json={"order_id": "ORD-77", "amount": "250.005", "session_id": "till-3"},
    )
    assert resp.status_code == 422
    # the session stays free for a corrected request
    ok = client.post("/api/v1/payments/flows", json={"order_id": "ORD-77", "amount": "250.01", "session_id": "till-3"})
    assert ok.status_code == 200
