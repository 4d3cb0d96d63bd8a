"""
Pytest configuration for async tests and shared certificate fixtures.
"""
from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from subscriber.clients.security_daemon import IssuedCertificate, parse_pem_certificates


def pytest_configure(config):
    """Configure pytest-asyncio mode."""
    config.option.asyncio_mode = "auto"


def _name(common_name: str) -> x509.Name:
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])


def _issue(subject: str, issuer_name: x509.Name, issuer_key, is_ca: bool):
    key = ec.generate_private_key(ec.SECP256R1())
    signing_key = issuer_key or key
    now = datetime.now(timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(_name(subject))
        .issuer_name(issuer_name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(now + timedelta(days=1))
        .add_extension(x509.BasicConstraints(ca=is_ca, path_length=None), critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(signing_key.public_key()), critical=False
        )
    )
    if is_ca:
        builder = builder.add_extension(
            x509.KeyUsage(
                digital_signature=True, content_commitment=False, key_encipherment=False,
                data_encipherment=False, key_agreement=False, key_cert_sign=True,
                crl_sign=True, encipher_only=False, decipher_only=False,
            ),
            critical=True,
        )
    else:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(subject), x509.DNSName("localhost")]), critical=False
        )
    return builder.sign(signing_key, hashes.SHA256()), key


def _pem(certificate: x509.Certificate) -> str:
    return certificate.public_bytes(serialization.Encoding.PEM).decode("ascii")


def _key_pem(key) -> str:
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode("ascii")


class CertificateAuthority:
    """Throwaway CA that issues leaf certificates the way the edge daemon does."""

    def __init__(self, common_name: str = "edge-ca"):
        self.certificate, self.key = _issue(common_name, _name(common_name), None, is_ca=True)

    @property
    def pem(self) -> str:
        return _pem(self.certificate)

    def issue(self, common_name: str) -> dict:
        """Daemon-shaped certificate response: leaf + CA chain and private key."""
        leaf, key = _issue(common_name, self.certificate.subject, self.key, is_ca=False)
        return {
            "privateKey": {"type": "key", "bytes": _key_pem(key)},
            "certificate": _pem(leaf) + self.pem,
            "expiration": leaf.not_valid_after_utc.strftime("%Y-%m-%dT%H:%M:%SZ"),
        }

    def issued(self, common_name: str) -> IssuedCertificate:
        """Same as issue(), already parsed the way SecurityDaemonClient returns it."""
        response = self.issue(common_name)
        certificates = parse_pem_certificates(response["certificate"])
        return IssuedCertificate(
            certificate=certificates[0],
            chain=certificates[1:],
            private_key_pem=response["privateKey"]["bytes"].encode("ascii"),
        )


@pytest.fixture(scope="session")
def edge_ca() -> CertificateAuthority:
    return CertificateAuthority()


@pytest.fixture(scope="session")
def root_ca() -> CertificateAuthority:
    return CertificateAuthority("device-root-ca")


class FakeSecurityDaemon:
    """
    Stands in for SecurityDaemonClient: callable like the class, usable as the
    async context manager it returns, and records every call in order.
    """

    def __init__(self, ca: CertificateAuthority, trust_bundle):
        self._ca = ca
        self._trust_bundle = trust_bundle
        self.calls = []

    def __call__(self, config):
        return self

    async def __aenter__(self):
        self.calls.append("open")
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.calls.append("close")

    async def get_server_certificate(self):
        self.calls.append("server")
        return self._ca.issued("subscriber")

    async def get_identity_certificate(self):
        self.calls.append("identity")
        return self._ca.issued("subscriber-identity")

    async def get_trust_bundle(self):
        self.calls.append("trust_bundle")
        return list(self._trust_bundle)


@pytest.fixture
def security_daemon(edge_ca, root_ca) -> FakeSecurityDaemon:
    return FakeSecurityDaemon(edge_ca, [root_ca.certificate])
