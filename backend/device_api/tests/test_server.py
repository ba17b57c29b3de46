# backend/device_api/tests/test_server.py
# Peer certificate hand-off from the TLS transport into the ASGI scope.
import asyncio
import ssl
from unittest.mock import MagicMock, patch

from cryptography.hazmat.primitives import serialization
from uvicorn.protocols.http.h11_impl import H11Protocol

from backend.device_api.core.certificates import load_certificate
from backend.device_api.server import ClientCertH11Protocol


class RecordingApp:
    def __init__(self):
        self.scopes = []

    async def __call__(self, scope, receive, send):
        self.scopes.append(scope)


def _transport(der=None, ssl_object=True):
    transport = MagicMock()
    if ssl_object:
        ssl_obj = MagicMock()
        ssl_obj.getpeercert.return_value = der
        transport.get_extra_info.side_effect = lambda name, default=None: (
            ssl_obj if name == "ssl_object" else default
        )
    else:
        transport.get_extra_info.return_value = None
    return transport


def _connect(transport, app):
    protocol = ClientCertH11Protocol.__new__(ClientCertH11Protocol)
    protocol.app = app
    with patch.object(H11Protocol, "connection_made") as base:
        protocol.connection_made(transport)
    base.assert_called_once_with(transport)
    return protocol


def _call(app, scope):
    async def receive():
        return {"type": "http.request"}

    async def send(message):
        pass

    asyncio.run(app(scope, receive, send))


def test_verified_peer_certificate_reaches_scope(make_cert):
    cert = make_cert(serial_number=0xC0FFEE)
    der = cert.public_bytes(serialization.Encoding.DER)
    inner = RecordingApp()

    protocol = _connect(_transport(der), inner)
    assert protocol.app is not inner

    _call(protocol.app, {"type": "http", "headers": []})

    chain = inner.scopes[0]["extensions"]["tls"]["client_cert_chain"]
    assert chain[0] == ssl.DER_cert_to_PEM_cert(der)
    assert load_certificate(chain[0]).serial_number == 0xC0FFEE


def test_lifespan_scope_is_untouched(make_cert):
    der = make_cert().public_bytes(serialization.Encoding.DER)
    inner = RecordingApp()

    protocol = _connect(_transport(der), inner)
    _call(protocol.app, {"type": "lifespan"})

    assert "extensions" not in inner.scopes[0]


def test_plain_connection_is_not_wrapped():
    inner = RecordingApp()
    protocol = _connect(_transport(ssl_object=False), inner)
    assert protocol.app is inner


def test_tls_without_client_certificate_is_not_wrapped():
    inner = RecordingApp()
    protocol = _connect(_transport(der=None), inner)
    assert protocol.app is inner
