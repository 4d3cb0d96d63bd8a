"""
Certificate provisioning.

Certificates issued by the security daemon are installed into a local
CertificateStore: the TLS listener reads its identity from files there and
outbound calls build their SSL context from the trusted CA bundle kept there.
"""
import os
import ssl
import stat
from pathlib import Path
from typing import Iterable, List, Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.serialization import Encoding

from subscriber.clients.security_daemon import IssuedCertificate, SecurityDaemonClient
from subscriber.config import Settings, settings as default_settings
from subscriber.logging_config import get_logger


logger = get_logger(__name__)


SERVER_CERT_FILE = "server.pem"
SERVER_KEY_FILE = "server.key"
CLIENT_CERT_FILE = "client.pem"
CLIENT_KEY_FILE = "client.key"
TRUSTED_CA_FILE = "trusted_ca.pem"


def _fingerprint(certificate: x509.Certificate) -> str:
    return certificate.fingerprint(hashes.SHA256()).hex()


def _pem(certificates: Iterable[x509.Certificate]) -> bytes:
    return b"".join(c.public_bytes(Encoding.PEM) for c in certificates)


def _private_directory(directory: Path) -> Path:
    """
    Create the store directory owner-only, or accept an existing one only if
    it is a real directory owned by this process's user.
    """
    directory.mkdir(mode=0o700, parents=True, exist_ok=True)

    info = directory.lstat()
    if not stat.S_ISDIR(info.st_mode):
        raise PermissionError(f"Certificate directory {directory} is not a plain directory")
    if info.st_uid != os.geteuid():
        raise PermissionError(f"Certificate directory {directory} is owned by another user")

    if stat.S_IMODE(info.st_mode) != 0o700:
        directory.chmod(0o700)
    return directory


class CertificateStore:
    """
    Append-only trust store backed by a directory.

    Importing the same CA twice is a no-op, so provisioning can be retried.
    """

    def __init__(self, directory: str | Path):
        self.directory = _private_directory(Path(directory))
        self._trusted: dict[str, x509.Certificate] = {}
        self._server: Optional[IssuedCertificate] = None
        self._client: Optional[IssuedCertificate] = None

    @property
    def server_cert_path(self) -> Path:
        return self.directory / SERVER_CERT_FILE

    @property
    def server_key_path(self) -> Path:
        return self.directory / SERVER_KEY_FILE

    @property
    def trusted_ca_path(self) -> Path:
        return self.directory / TRUSTED_CA_FILE

    @property
    def has_server_identity(self) -> bool:
        return self._server is not None

    @property
    def trusted_certificates(self) -> List[x509.Certificate]:
        return list(self._trusted.values())

    def import_server_certificate(self, issued: IssuedCertificate) -> None:
        """Install the listener identity: leaf + chain and private key."""
        self._write(self.server_cert_path, _pem([issued.certificate, *issued.chain]))
        self._write(self.server_key_path, issued.private_key_pem, private=True)
        self._server = issued

    def import_client_certificate(self, issued: IssuedCertificate) -> None:
        """Install the identity presented on outbound mutual TLS calls."""
        self._write(self.directory / CLIENT_CERT_FILE, _pem([issued.certificate, *issued.chain]))
        self._write(self.directory / CLIENT_KEY_FILE, issued.private_key_pem, private=True)
        self._client = issued

    def import_intermediate_cas(self, certificates: Iterable[x509.Certificate]) -> int:
        """
        Add CA certificates to the trusted bundle.

        Returns:
            Number of certificates that were not already trusted
        """
        added = 0
        for certificate in certificates:
            fingerprint = _fingerprint(certificate)
            if fingerprint in self._trusted:
                continue
            self._trusted[fingerprint] = certificate
            added += 1

        if added:
            self._write(self.trusted_ca_path, _pem(self._trusted.values()))

        return added

    def client_ssl_context(self) -> ssl.SSLContext:
        """
        SSL context for outbound calls.

        Peers must chain to a trusted CA. The client identity is presented
        when one has been imported.
        """
        if not self._trusted:
            raise RuntimeError("Trust bundle must be installed before outbound TLS calls")

        context = ssl.create_default_context(purpose=ssl.Purpose.SERVER_AUTH)
        # Edge module certificates are issued for the module name, not the URL host
        context.check_hostname = False
        context.verify_mode = ssl.CERT_REQUIRED
        context.load_verify_locations(cadata=_pem(self.trusted_certificates).decode("ascii"))

        if self._client is not None:
            context.load_cert_chain(
                certfile=str(self.directory / CLIENT_CERT_FILE),
                keyfile=str(self.directory / CLIENT_KEY_FILE),
            )

        return context

    @staticmethod
    def _write(path: Path, data: bytes, private: bool = False) -> None:
        """
        Replace a file in the store. Never follows a symlink; key files are
        owner-only from the moment they are created.
        """
        mode = 0o600 if private else 0o644
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC | os.O_NOFOLLOW, mode)
        with os.fdopen(fd, "wb") as f:
            os.fchmod(f.fileno(), mode)
            f.write(data)


async def provision_server_identity(
    store: CertificateStore,
    config: Optional[Settings] = None,
    daemon_factory=SecurityDaemonClient,
) -> IssuedCertificate:
    """
    Install the server certificate, its intermediates and the trust bundle.

    Must complete before the webhook host starts.
    """
    config = config or default_settings

    async with daemon_factory(config) as daemon:
        logger.info("certificates.configure_server")
        server = await daemon.get_server_certificate()

        store.import_server_certificate(server)
        store.import_intermediate_cas([server.certificate])
        store.import_intermediate_cas(server.chain)

        logger.info("certificates.configure_trust_bundle")
        trust_bundle = await daemon.get_trust_bundle()
        added = store.import_intermediate_cas(trust_bundle)

    logger.info(
        "certificates.server_installed",
        subject=server.certificate.subject.rfc4514_string(),
        not_after=server.not_valid_after.isoformat(),
        trusted_added=added,
    )
    return server


async def provision_client_identity(
    store: CertificateStore,
    config: Optional[Settings] = None,
    daemon_factory=SecurityDaemonClient,
) -> IssuedCertificate:
    """Fetch and install the module identity certificate used to call Event Grid."""
    config = config or default_settings

    async with daemon_factory(config) as daemon:
        identity = await daemon.get_identity_certificate()

    store.import_client_certificate(identity)
    store.import_intermediate_cas(identity.chain)

    logger.info(
        "certificates.client_installed",
        not_before=identity.not_valid_before.isoformat(),
        not_after=identity.not_valid_after.isoformat(),
    )
    return identity
