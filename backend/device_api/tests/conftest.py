# backend/device_api/tests/conftest.py
from datetime import datetime, timedelta, timezone
from urllib.parse import quote

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.x509.oid import NameOID
from fastapi.testclient import TestClient

from backend.device_api.core.config import Settings
from backend.device_api.core.security import TokenManager, TokenSettings
from backend.device_api.db.memory_db import MemoryDB
from backend.device_api.main import create_app
from backend.device_api.services.device_service import DeviceService
from device_client.utils.certs import certificate_pem, create_ca, generate_rsa_key, issue_certificate

TEST_SECRET = "unit-test-secret-key-0123456789-abcdefghijklmnop"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        JWT_SECRET_KEY=TEST_SECRET,
        STORAGE_BACKEND="memory",
        TLS_REQUIRE_SSL=False,     # certificates arrive in the proxy header
        LOG_LEVEL="WARNING",
        _env_file=None,
    )


@pytest.fixture
def db() -> MemoryDB:
    return MemoryDB()


@pytest.fixture
def svc(db) -> DeviceService:
    return DeviceService(db)


@pytest.fixture(scope="session")
def test_ca():
    """CA whose common name is 'TestCA'."""
    return create_ca("TestCA")


@pytest.fixture(scope="session")
def make_cert(test_ca):
    ca_cert, ca_key = test_ca

    def _make(serial_number: int = 0xABC123, common_name: str = "device-1") -> x509.Certificate:
        cert, _ = issue_certificate(ca_cert, ca_key, common_name, serial_number=serial_number)
        return cert

    return _make


@pytest.fixture(scope="session")
def cert_without_issuer_cn():
    """Self-signed certificate whose issuer has no common name."""
    key = generate_rsa_key()
    name = x509.Name([x509.NameAttribute(NameOID.ORGANIZATION_NAME, "No CN Org")])
    now = datetime.now(timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(0x1234)
        .not_valid_before(now - timedelta(minutes=1))
        .not_valid_after(now + timedelta(days=1))
        .sign(private_key=key, algorithm=hashes.SHA256())
    )


@pytest.fixture(scope="session")
def cert_header():
    """PEM escaped the way a TLS-terminating proxy forwards it."""
    def _header(cert: x509.Certificate) -> dict:
        return {"X-Client-Cert": quote(certificate_pem(cert))}
    return _header


@pytest.fixture
def tokens(settings) -> TokenManager:
    return TokenManager(TokenSettings.from_settings(settings))


@pytest.fixture
def bearer(tokens):
    def _bearer(user_id: str) -> dict:
        return {"Authorization": f"Bearer {tokens.issue_token(user_id)}"}
    return _bearer


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as c:
        yield c
