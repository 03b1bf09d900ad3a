"""HTTP API: booking flow through the operator and customer endpoints."""

import pytest
from fastapi.testclient import TestClient

from gamecentre.main import app


@pytest.fixture
def client(engine):
    app.state.sessions = engine
    with TestClient(app) as c:
        yield c
    del app.state.sessions


def create(client, **overrides):
    body = {
        "name": "A",
        "phone": "5551234567",
        "device_id": "CONSOLE-01",
        "duration_minutes": 30,
    }
    body.update(overrides)
    r = client.post("/api/v1/sessions", json=body)
    assert r.status_code == 201, f"create failed: {r.status_code} {r.text}"
    return r.json()


def approve(client, session_id):
    r = client.post(f"/api/v1/sessions/{session_id}/approve")
    assert r.status_code == 200, f"approve failed: {r.status_code} {r.text}"
    return r.json()


def test_health(client):
    assert client.get("/api/v1/health").json() == {"status": "ok"}
    assert client.get("/api/v1/system/ping").json() == {"status": "ok"}
    assert client.get("/").json()["status"] == "running"


def test_create_session(client):
    data = create(client, amount=5, address="12 High Street")

    assert data["id"].startswith("ses_")
    assert data["status"] == "pending"
    assert data["payment_status"] == "pending"
    assert data["amount_display"] == "5.00"
    assert data["device_name"] == "Console 1"
    assert data["customer_address"] == "12 High Street"
    assert data["remaining_attempts"] == 3
    assert data["code_expires_at"] is None


@pytest.mark.parametrize("overrides, error", [
    ({"phone": "12345"}, "invalid_phone"),
    ({"device_id": "XBOX-99"}, "unknown_device"),
    ({"duration_minutes": 45}, "invalid_duration"),
    ({"name": ""}, "invalid_name"),
])
def test_create_session_validation(client, overrides, error):
    body = {"name": "A", "phone": "5551234567", "device_id": "CONSOLE-01", "duration_minutes": 30}
    body.update(overrides)
    r = client.post("/api/v1/sessions", json=body)

    assert r.status_code == 422, r.text
    assert r.json()["detail"]["error"] == error


def test_full_booking_flow(client, fixed_code):
    session = create(client)
    sid = session["id"]

    r = client.post(f"/api/v1/sessions/{sid}/payment", json={"method": "online"})
    assert r.status_code == 200, r.text
    assert r.json()["payment_status"] == "paid"

    data = approve(client, sid)
    assert data["code"] == fixed_code
    assert data["expires_in"] == 300
    assert data["session"]["status"] == "approved"

    r = client.post(f"/api/v1/sessions/{sid}/verify", json={"code": fixed_code})
    assert r.status_code == 200, r.text
    active = r.json()
    assert active["status"] == "active"
    assert active["remaining_seconds"] == 1800
    assert active["warning"] is False

    devices = client.get("/api/v1/devices").json()
    assert devices["total"] == 5
    assert devices["available"] == 4
    console = next(d for d in devices["devices"] if d["id"] == "CONSOLE-01")
    assert console["status"] == "unlocked"
    assert console["current_session_id"] == sid

    r = client.post(f"/api/v1/sessions/{sid}/end")
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "completed"
    assert r.json()["progress_percent"] == 100.0

    # Ending again changes nothing
    r = client.post(f"/api/v1/sessions/{sid}/end")
    assert r.status_code == 200
    assert client.get("/api/v1/devices/CONSOLE-01").json()["status"] == "locked"


def test_wrong_codes(client, fixed_code):
    sid = create(client)["id"]
    approve(client, sid)

    r = client.post(f"/api/v1/sessions/{sid}/verify", json={"code": "000000"})
    assert r.status_code == 401
    assert r.json()["detail"] == {
        "error": "invalid_code",
        "remaining_attempts": 2,
        "message": "Invalid code. 2 attempts remaining",
    }

    r = client.post(f"/api/v1/sessions/{sid}/verify", json={"code": "000000"})
    assert r.json()["detail"]["remaining_attempts"] == 1

    r = client.post(f"/api/v1/sessions/{sid}/verify", json={"code": "000000"})
    assert r.status_code == 429
    assert r.json()["detail"]["error"] == "attempts_exhausted"

    r = client.get(f"/api/v1/sessions/{sid}")
    assert r.json()["remaining_attempts"] == 0
    assert client.get("/api/v1/devices/CONSOLE-01").json()["status"] == "locked"


def test_malformed_code_is_rejected_before_counting(client, engine):
    sid = create(client)["id"]
    approve(client, sid)

    for code in ("12345", "1234567", "12a456"):
        r = client.post(f"/api/v1/sessions/{sid}/verify", json={"code": code})
        assert r.status_code == 422, code

    assert engine.get_session(sid).code_attempts == 0


def test_expired_code(client, clock, fixed_code):
    sid = create(client)["id"]
    approve(client, sid)
    clock.advance(301)

    r = client.post(f"/api/v1/sessions/{sid}/verify", json={"code": fixed_code})
    assert r.status_code == 410
    assert r.json()["detail"]["error"] == "code_expired"


def test_state_conflicts(client):
    sid = create(client)["id"]
    approve(client, sid)

    r = client.post(f"/api/v1/sessions/{sid}/approve")
    assert r.status_code == 409
    assert r.json()["detail"]["error"] == "invalid_state"

    r = client.post(f"/api/v1/sessions/{sid}/reject")
    assert r.status_code == 409

    r = client.post(f"/api/v1/sessions/{sid}/end")
    assert r.status_code == 409


def test_not_found(client):
    r = client.get("/api/v1/sessions/ses_missing")
    assert r.status_code == 404
    assert r.json()["detail"]["error"] == "session_not_found"

    assert client.post("/api/v1/sessions/ses_missing/approve").status_code == 404
    assert client.get("/api/v1/devices/XBOX-99").status_code == 422


def test_payment_errors(client, payments):
    sid = create(client)["id"]

    r = client.post(f"/api/v1/sessions/{sid}/payment", json={"method": "cheque"})
    assert r.status_code == 422
    assert r.json()["detail"]["error"] == "invalid_payment_method"

    payments.result = "failed"
    r = client.post(f"/api/v1/sessions/{sid}/payment", json={"method": "online"})
    assert r.status_code == 402
    assert r.json()["detail"]["error"] == "payment_failed"


def test_list_sessions(client, clock):
    first = create(client)["id"]
    clock.advance(1)
    second = create(client, device_id="PC-01")["id"]
    client.post(f"/api/v1/sessions/{first}/reject")

    data = client.get("/api/v1/sessions").json()
    assert data["total"] == 2
    assert [s["id"] for s in data["sessions"]] == [second, first]

    data = client.get("/api/v1/sessions", params={"status": "rejected"}).json()
    assert [s["id"] for s in data["sessions"]] == [first]

    assert client.get("/api/v1/sessions", params={"status": "bogus"}).status_code == 422


def test_system_status(client):
    create(client)
    data = client.get("/api/v1/system/status").json()

    assert data["sessions"]["pending"] == 1
    assert data["devices_available"] == 5


def test_websocket_ping(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_text('{"type": "ping"}')
        assert ws.receive_json() == {"type": "pong"}

        ws.send_text("not json")
        assert ws.receive_json()["type"] == "error"


def test_approve_response_keeps_code_after_quick_activation(client, engine, sink, fixed_code, monkeypatch):
    sid = create(client)["id"]
    record_event = sink.notify

    def activate_on_approval(kind, session_id, payload):
        record_event(kind, session_id, payload)
        if kind == "approved":
            engine.verify_and_activate(session_id, payload["code"])

    monkeypatch.setattr(sink, "notify", activate_on_approval)

    data = approve(client, sid)
    assert data["code"] == fixed_code
    assert engine.get_session(sid).status == "active"
