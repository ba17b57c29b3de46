# backend/device_api/server.py
"""
HTTPS runner with mutual TLS.

uvicorn verifies client certificates against TLS_CA_FILE
(ssl_cert_reqs=CERT_REQUIRED) but does not hand them to the application,
so the h11 protocol below copies the verified peer certificate into the
ASGI TLS extension, where api.deps reads it.
"""
import logging
import ssl
from typing import Optional

import uvicorn
from uvicorn.protocols.http.h11_impl import H11Protocol

from backend.device_api.core.config import Settings, get_settings
from backend.device_api.main import create_app

logger = logging.getLogger(__name__)


class _PeerCertificateApp:
    """ASGI wrapper bound to one connection's client certificate."""

    def __init__(self, app, cert_pem: str):
        self.app = app
        self.cert_pem = cert_pem

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http":
            extensions = scope.setdefault("extensions", {})
            extensions.setdefault("tls", {"client_cert_chain": [self.cert_pem]})
        await self.app(scope, receive, send)


class ClientCertH11Protocol(H11Protocol):
    def connection_made(self, transport):
        super().connection_made(transport)
        ssl_object = transport.get_extra_info("ssl_object")
        if ssl_object is None:
            return
        der = ssl_object.getpeercert(binary_form=True)
        if der:
            self.app = _PeerCertificateApp(self.app, ssl.DER_cert_to_PEM_cert(der))


def run(settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()
    app = create_app(settings)

    if not settings.TLS_REQUIRE_SSL:
        logger.warning("TLS disabled; client certificates must arrive via "
                       f"the {settings.CLIENT_CERT_HEADER} header from a trusted proxy")
        uvicorn.run(
            app,
            host=settings.SERVER_HOST,
            port=settings.SERVER_PORT,
            timeout_keep_alive=settings.SERVER_TIMEOUT_KEEP_ALIVE,
            log_level=settings.LOG_LEVEL.lower(),
        )
        return

    settings.require_tls_files()
    logger.info(f"Starting HTTPS server on {settings.SERVER_HOST}:{settings.SERVER_PORT} "
                "(client certificates required)")
    uvicorn.run(
        app,
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        http=ClientCertH11Protocol,
        timeout_keep_alive=settings.SERVER_TIMEOUT_KEEP_ALIVE,
        ssl_certfile=settings.TLS_CERT_FILE,
        ssl_keyfile=settings.TLS_KEY_FILE,
        ssl_ca_certs=settings.TLS_CA_FILE,
        ssl_cert_reqs=ssl.CERT_REQUIRED,
        # PROTOCOL_TLS_SERVER negotiates TLS 1.2 or newer on current OpenSSL builds
        ssl_version=ssl.PROTOCOL_TLS_SERVER,
        log_level=settings.LOG_LEVEL.lower(),
    )
