# device_client/utils/certs.py
"""
Development PKI: one CA, a server certificate for localhost and any number of
device (client) certificates, all written as PEM files.
Not meant for production key management.
"""
import ipaddress
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

DEFAULT_CA_NAME = "Device Assignment Dev CA"
CERT_LIFETIME = timedelta(days=365)


@dataclass(frozen=True)
class CertPaths:
    cert: Path
    key: Path


def generate_rsa_key(bits: int = 2048) -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=bits)


def _name(common_name: str, org: Optional[str] = None) -> x509.Name:
    attributes = [x509.NameAttribute(NameOID.COMMON_NAME, common_name)]
    if org:
        attributes.append(x509.NameAttribute(NameOID.ORGANIZATION_NAME, org))
    return x509.Name(attributes)


def create_ca(common_name: str = DEFAULT_CA_NAME,
              lifetime: timedelta = CERT_LIFETIME) -> Tuple[x509.Certificate, rsa.RSAPrivateKey]:
    key = generate_rsa_key()
    name = _name(common_name)
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=1))
        .not_valid_after(now + lifetime)
        .add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True, content_commitment=False, key_encipherment=False,
                data_encipherment=False, key_agreement=False, key_cert_sign=True,
                crl_sign=True, encipher_only=False, decipher_only=False,
            ),
            critical=True,
        )
        .sign(private_key=key, algorithm=hashes.SHA256())
    )
    return cert, key


def issue_certificate(
    ca_cert: x509.Certificate,
    ca_key: rsa.RSAPrivateKey,
    common_name: str,
    *,
    server: bool = False,
    serial_number: Optional[int] = None,
    lifetime: timedelta = CERT_LIFETIME,
) -> Tuple[x509.Certificate, rsa.RSAPrivateKey]:
    """
    Leaf certificate signed by the CA. Server certificates carry SANs for
    localhost and 127.0.0.1; client certificates carry clientAuth usage.
    The serial number becomes the device identity on the server.
    """
    key = generate_rsa_key()
    now = datetime.now(timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(_name(common_name))
        .issuer_name(ca_cert.subject)
        .public_key(key.public_key())
        .serial_number(serial_number or x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=1))
        .not_valid_after(now + lifetime)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
    )
    if server:
        san: List[x509.GeneralName] = [
            x509.DNSName("localhost"),
            x509.IPAddress(ipaddress.ip_address("127.0.0.1")),
        ]
        builder = builder.add_extension(x509.SubjectAlternativeName(san), critical=False)
        usage = ExtendedKeyUsageOID.SERVER_AUTH
    else:
        usage = ExtendedKeyUsageOID.CLIENT_AUTH
    builder = builder.add_extension(x509.ExtendedKeyUsage([usage]), critical=False)

    cert = builder.sign(private_key=ca_key, algorithm=hashes.SHA256())
    return cert, key


def certificate_pem(cert: x509.Certificate) -> str:
    return cert.public_bytes(serialization.Encoding.PEM).decode("ascii")


def write_private_key(path: Path, key: rsa.RSAPrivateKey) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    # Created with 0600 so the key is never world-readable, even briefly.
    fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    try:
        os.write(fd, pem)
    finally:
        os.close(fd)


def write_certificate(path: Path, cert: x509.Certificate) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(certificate_pem(cert), encoding="ascii")


def load_ca(directory: Path) -> Tuple[x509.Certificate, rsa.RSAPrivateKey]:
    cert = x509.load_pem_x509_certificate((directory / "ca.crt").read_bytes())
    key = serialization.load_pem_private_key((directory / "ca.key").read_bytes(), password=None)
    return cert, key


def setup_dev_pki(directory: Path, client_names: List[str],
                  ca_name: str = DEFAULT_CA_NAME) -> dict:
    """
    Writes ca.crt/ca.key, server.crt/server.key and <name>.crt/<name>.key for
    every client name into directory. An existing CA is reused so already
    issued certificates stay valid.
    """
    directory.mkdir(parents=True, exist_ok=True)
    if (directory / "ca.crt").exists() and (directory / "ca.key").exists():
        ca_cert, ca_key = load_ca(directory)
    else:
        ca_cert, ca_key = create_ca(ca_name)
        write_certificate(directory / "ca.crt", ca_cert)
        write_private_key(directory / "ca.key", ca_key)

    written = {"ca": CertPaths(directory / "ca.crt", directory / "ca.key")}

    server_cert, server_key = issue_certificate(ca_cert, ca_key, "localhost", server=True)
    write_certificate(directory / "server.crt", server_cert)
    write_private_key(directory / "server.key", server_key)
    written["server"] = CertPaths(directory / "server.crt", directory / "server.key")

    for name in client_names:
        cert, key = issue_certificate(ca_cert, ca_key, name)
        write_certificate(directory / f"{name}.crt", cert)
        write_private_key(directory / f"{name}.key", key)
        written[name] = CertPaths(directory / f"{name}.crt", directory / f"{name}.key")

    return written
