# backend/device_api/tests/test_device_endpoints.py
# End-to-end through FastAPI with the in-memory store.
from uuid import uuid4

from fastapi.testclient import TestClient
from starlette.requests import Request

from backend.device_api.api.deps import device_certificate_required
from backend.device_api.main import create_app
from device_client.utils.certs import certificate_pem


def _register(client, cert_header, cert) -> str:
    resp = client.post("/api/v1/devices/authenticate", headers=cert_header(cert))
    assert resp.status_code == 200, resp.text
    return resp.json()["id"]


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_authenticate_registers_once(client, make_cert, cert_header):
    cert = make_cert(serial_number=0xABC123)

    first = client.post("/api/v1/devices/authenticate", headers=cert_header(cert))
    second = client.post("/api/v1/devices/authenticate", headers=cert_header(cert))

    assert first.status_code == 200
    body = first.json()
    assert body["serial_number"] == "ABC123"
    assert body["issuer_common_name"] == "TestCA"
    assert second.json() == body


def test_authenticate_without_certificate(client):
    resp = client.post("/api/v1/devices/authenticate")
    assert resp.status_code == 401


def test_authenticate_with_unusable_certificate(client, cert_header, cert_without_issuer_cn):
    resp = client.post("/api/v1/devices/authenticate", headers=cert_header(cert_without_issuer_cn))
    assert resp.status_code == 401

    resp = client.post("/api/v1/devices/authenticate", headers={"X-Client-Cert": "garbage"})
    assert resp.status_code == 401


def test_user_endpoints_require_bearer(client):
    device_id = uuid4()
    for method, path in [
        ("GET", f"/api/v1/devices/{device_id}"),
        ("POST", f"/api/v1/devices/{device_id}/assign"),
        ("DELETE", f"/api/v1/devices/{device_id}/unassign"),
        ("GET", f"/api/v1/devices/{device_id}/assignments"),
        ("GET", "/api/v1/users/me/devices"),
    ]:
        resp = client.request(method, path)
        assert resp.status_code == 401, path
        assert resp.headers.get("www-authenticate") == "Bearer"

        resp = client.request(method, path, headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401, path


def test_invalid_device_id_is_422(client, bearer):
    resp = client.get("/api/v1/devices/not-a-uuid", headers=bearer("alice"))
    assert resp.status_code == 422


def test_unknown_device_is_404(client, bearer):
    device_id = uuid4()
    assert client.get(f"/api/v1/devices/{device_id}", headers=bearer("alice")).status_code == 404
    assert client.post(f"/api/v1/devices/{device_id}/assign", headers=bearer("alice")).status_code == 404
    assert client.delete(f"/api/v1/devices/{device_id}/unassign", headers=bearer("alice")).status_code == 404


def test_alice_and_bob(client, make_cert, cert_header, bearer):
    device_id = _register(client, cert_header, make_cert(serial_number=0xABC123))
    alice, bob = bearer("alice"), bearer("bob")

    # alice claims the device
    resp = client.post(f"/api/v1/devices/{device_id}/assign", headers=alice)
    assert resp.status_code == 200
    assert resp.json()["message"] == "Device assigned successfully"
    assert resp.json()["assignment"]["user_id"] == "alice"

    resp = client.get(f"/api/v1/devices/{device_id}", headers=alice)
    assert resp.status_code == 200
    assert resp.json()["is_assigned"] is True
    assert resp.json()["user_id"] == "alice"

    # bob can neither claim, see, nor release it
    assert client.post(f"/api/v1/devices/{device_id}/assign", headers=bob).status_code == 409
    assert client.get(f"/api/v1/devices/{device_id}", headers=bob).status_code == 404
    assert client.delete(f"/api/v1/devices/{device_id}/unassign", headers=bob).status_code == 404
    assert client.get(f"/api/v1/devices/{device_id}/assignments", headers=bob).status_code == 404

    resp = client.get("/api/v1/users/me/devices", headers=alice)
    assert resp.json()["count"] == 1
    assert resp.json()["devices"][0]["id"] == device_id

    # alice releases it, bob takes over
    resp = client.delete(f"/api/v1/devices/{device_id}/unassign", headers=alice)
    assert resp.status_code == 200
    assert resp.json() == {"message": "Device unassigned successfully"}

    assert client.delete(f"/api/v1/devices/{device_id}/unassign", headers=alice).status_code == 404
    assert client.post(f"/api/v1/devices/{device_id}/assign", headers=bob).status_code == 200

    assert client.get("/api/v1/users/me/devices", headers=alice).json() == {"devices": [], "count": 0}
    assert client.get("/api/v1/users/me/devices", headers=bob).json()["count"] == 1

    resp = client.get(f"/api/v1/devices/{device_id}/assignments", headers=bob)
    assert resp.status_code == 200
    history = resp.json()["assignments"]
    assert sorted(a["user_id"] for a in history) == ["alice", "bob"]
    assert [a["user_id"] for a in history if a["unassigned_at"] is None] == ["bob"]


def test_unowned_device_is_visible(client, make_cert, cert_header, bearer):
    device_id = _register(client, cert_header, make_cert(serial_number=0x77))

    resp = client.get(f"/api/v1/devices/{device_id}", headers=bearer("carol"))

    assert resp.status_code == 200
    assert resp.json()["is_assigned"] is False
    assert resp.json()["user_id"] is None


def test_certificate_from_tls_extension(settings, make_cert):
    cert = make_cert(serial_number=0x99)
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/api/v1/devices/authenticate",
        "headers": [],
        "extensions": {"tls": {"client_cert_chain": [certificate_pem(cert)]}},
    }

    found = device_certificate_required(Request(scope), settings)

    assert found.serial_number == 0x99


def test_proxy_header_ignored_when_server_terminates_tls(settings, make_cert, cert_header):
    direct_tls = settings.model_copy(update={"TLS_REQUIRE_SSL": True})

    with TestClient(create_app(direct_tls)) as c:
        resp = c.post("/api/v1/devices/authenticate", headers=cert_header(make_cert()))

    assert resp.status_code == 401


def test_handshake_certificate_used_when_server_terminates_tls(settings, make_cert):
    direct_tls = settings.model_copy(update={"TLS_REQUIRE_SSL": True})
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/api/v1/devices/authenticate",
        "headers": [],
        "extensions": {"tls": {"client_cert_chain": [certificate_pem(make_cert(serial_number=0x5))]}},
    }

    assert device_certificate_required(Request(scope), direct_tls).serial_number == 0x5
