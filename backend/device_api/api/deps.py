# backend/device_api/api/deps.py
import logging
from typing import Optional

from cryptography import x509
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from backend.device_api.core.certificates import load_certificate
from backend.device_api.core.config import Settings
from backend.device_api.core.errors import InvalidCertificate, InvalidToken
from backend.device_api.core.security import TokenManager
from backend.device_api.services.device_service import DeviceService

bearer_scheme = HTTPBearer(auto_error=False)
logger = logging.getLogger(__name__)

# -----------------------
# Application state
# -----------------------

def get_db(request: Request):
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise RuntimeError("Store not initialized")
    return db


def get_app_settings(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        raise RuntimeError("Settings not initialized")
    return settings


def get_token_manager(request: Request) -> TokenManager:
    manager = getattr(request.app.state, "token_manager", None)
    if manager is None:
        raise RuntimeError("Token manager not initialized")
    return manager

# -----------------------
# Service Dependencies
# -----------------------

def get_device_service(db = Depends(get_db)) -> DeviceService:
    return DeviceService(db)

# -----------------------
# Principals
# -----------------------

def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def user_required(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    tokens: TokenManager = Depends(get_token_manager),
) -> str:
    """
    Verifies the bearer token and returns the caller's user_id.
    Raises HTTPException(401) on a missing or invalid token.
    """
    if not creds or not creds.credentials:
        raise _unauthorized("Authorization credentials missing")

    try:
        claims = tokens.verify_token(creds.credentials)
    except InvalidToken as e:
        logger.warning(f"Rejected bearer token: {e}")
        raise _unauthorized("Invalid or expired token")

    return claims.user_id


def _peer_certificate(request: Request) -> Optional[x509.Certificate]:
    """Leaf certificate from the ASGI TLS extension, when the server exposes it."""
    tls = request.scope.get("extensions", {}).get("tls") or {}
    chain = tls.get("client_cert_chain") or []
    if not chain:
        return None
    return load_certificate(chain[0])


def device_certificate_required(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> x509.Certificate:
    """
    Client certificate of the calling device.

    Prefers the certificate from the TLS handshake. Only when TLS is
    terminated upstream (TLS_REQUIRE_SSL=false) is the PEM forwarded by the
    proxy in settings.CLIENT_CERT_HEADER accepted.
    The chain has already been verified by whichever side terminated TLS.
    Raises HTTPException(401) when no usable certificate is present.
    """
    try:
        cert = _peer_certificate(request)
        if cert is None and not settings.TLS_REQUIRE_SSL:
            header = request.headers.get(settings.CLIENT_CERT_HEADER)
            if not header:
                raise InvalidCertificate("no client certificate provided")
            cert = load_certificate(header)
        if cert is None:
            raise InvalidCertificate("no client certificate provided")
    except InvalidCertificate as e:
        logger.warning(f"Device authentication rejected: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Client certificate missing or unreadable",
        )
    return cert
