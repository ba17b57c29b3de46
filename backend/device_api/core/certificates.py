# backend/device_api/core/certificates.py
"""
Device identity from client certificates.

The transport layer (uvicorn with ssl_cert_reqs=CERT_REQUIRED, or a
TLS-terminating proxy) has already verified the chain and validity period.
Everything here is structural: it only makes sure the metadata we key
devices on is present and normalized.
"""
from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import unquote

from cryptography import x509
from cryptography.x509.oid import NameOID

from backend.device_api.core.errors import InvalidCertificate

PEM_MARKER = "-----BEGIN CERTIFICATE-----"


@dataclass(frozen=True)
class DeviceIdentity:
    serial_number: str
    issuer_common_name: str


def load_certificate(pem: Union[str, bytes]) -> x509.Certificate:
    """
    Parse a PEM certificate. URL-escaped PEM (nginx $ssl_client_escaped_cert,
    Envoy XFCC "Cert=" values) is unescaped first.
    """
    if pem is None:
        raise InvalidCertificate("certificate is missing")

    if isinstance(pem, bytes):
        pem = pem.decode("ascii", errors="replace")

    text = pem.strip()
    if not text:
        raise InvalidCertificate("certificate is missing")
    if PEM_MARKER not in text and "%" in text:
        text = unquote(text)

    try:
        return x509.load_pem_x509_certificate(text.encode("ascii"))
    except (ValueError, UnicodeEncodeError) as e:
        raise InvalidCertificate(f"certificate could not be parsed: {e}") from e


def format_serial_number(serial_number: Optional[int]) -> str:
    # Uppercase hex without leading zeros, so equal integers give equal strings.
    if serial_number is None:
        return ""
    return format(serial_number, "X")


def _common_name(name: x509.Name) -> str:
    attributes = name.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attributes:
        return ""
    value = attributes[0].value
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    return value.strip()


def validate_certificate(certificate: Optional[x509.Certificate]) -> None:
    """
    Structural checks only: serial present and issuer CN present.
    Raises InvalidCertificate.
    """
    if certificate is None:
        raise InvalidCertificate("certificate is missing")

    if getattr(certificate, "serial_number", None) is None:
        raise InvalidCertificate("certificate serial number is missing")

    if not _common_name(certificate.issuer):
        raise InvalidCertificate("certificate issuer common name is missing")


def extract_identity(certificate: Optional[x509.Certificate]) -> DeviceIdentity:
    validate_certificate(certificate)
    return DeviceIdentity(
        serial_number=format_serial_number(certificate.serial_number),
        issuer_common_name=_common_name(certificate.issuer),
    )


def subject_common_name(certificate: x509.Certificate) -> str:
    """Subject CN, used for log context only."""
    return _common_name(certificate.subject)
