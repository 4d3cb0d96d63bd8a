"""IoT Edge workload API client (the local security daemon)."""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlparse

import httpx
from cryptography import x509

from subscriber.config import Settings, settings as default_settings
from subscriber.errors import SecurityDaemonError
from subscriber.logging_config import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class IssuedCertificate:
    """Leaf certificate issued by the daemon, its chain and its private key."""
    certificate: x509.Certificate
    chain: List[x509.Certificate]
    private_key_pem: bytes

    @property
    def not_valid_before(self) -> datetime:
        return self.certificate.not_valid_before_utc

    @property
    def not_valid_after(self) -> datetime:
        return self.certificate.not_valid_after_utc


def parse_pem_certificates(pem: str | bytes) -> List[x509.Certificate]:
    """
    Parse every certificate in a PEM bundle.

    Raises:
        SecurityDaemonError: If the bundle holds no certificate
    """
    data = pem.encode("ascii") if isinstance(pem, str) else pem
    try:
        certificates = x509.load_pem_x509_certificates(data)
    except ValueError as e:
        raise SecurityDaemonError(f"Invalid certificate material: {e}") from e

    if not certificates:
        raise SecurityDaemonError("Certificate material contained no certificates")

    return certificates


class SecurityDaemonClient:
    """
    Short-lived client for the edge workload API.

    Usage:
        async with SecurityDaemonClient() as daemon:
            server = await daemon.get_server_certificate()
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._config = config or default_settings
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "SecurityDaemonClient":
        base_url, socket_path = self._resolve_endpoint()
        transport = self._transport
        if transport is None and socket_path:
            transport = httpx.AsyncHTTPTransport(uds=socket_path)
        self._client = httpx.AsyncClient(
            base_url=base_url,
            transport=transport,
            timeout=self._config.request_timeout_seconds,
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get_server_certificate(self) -> IssuedCertificate:
        """Request a TLS server certificate for this module's hostname."""
        common_name = self._config.iotedge_gatewayhostname or self._config.iotedge_moduleid
        body = await self._request(
            "POST",
            f"{self._module_path()}/certificate/server",
            json={
                "commonName": common_name,
                "expiration": self._expiration(self._config.server_certificate_validity_days),
            },
        )
        return self._issued_certificate(body)

    async def get_identity_certificate(self) -> IssuedCertificate:
        """Request the module identity (client) certificate."""
        body = await self._request(
            "POST",
            f"{self._module_path()}/certificate/identity",
            json={
                "expiration": self._expiration(self._config.identity_certificate_validity_days),
            },
        )
        return self._issued_certificate(body)

    async def get_trust_bundle(self) -> List[x509.Certificate]:
        """Fetch the CA certificates this device trusts."""
        body = await self._request("GET", "/trust-bundle")
        return parse_pem_certificates(self._field(body, "certificate"))

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if self._client is None:
            raise RuntimeError("SecurityDaemonClient must be used as an async context manager")

        response = await self._client.request(
            method,
            path,
            params={"api-version": self._config.iotedge_apiversion},
            json=json,
        )

        if response.status_code >= 400:
            logger.error(
                "security_daemon.request_failed",
                method=method,
                path=path,
                status_code=response.status_code
            )
            raise SecurityDaemonError(
                f"{method} {path} failed with status {response.status_code}: {response.text}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise SecurityDaemonError(f"{method} {path} returned invalid JSON") from e

        if not isinstance(payload, dict):
            raise SecurityDaemonError(f"{method} {path} returned an unexpected body")

        return payload

    def _issued_certificate(self, body: Dict[str, Any]) -> IssuedCertificate:
        certificates = parse_pem_certificates(self._field(body, "certificate"))
        private_key = body.get("privateKey") or {}
        key_pem = private_key.get("bytes") if isinstance(private_key, dict) else None
        if not key_pem:
            raise SecurityDaemonError("Certificate response did not include a private key")

        return IssuedCertificate(
            certificate=certificates[0],
            chain=certificates[1:],
            private_key_pem=key_pem.encode("ascii"),
        )

    @staticmethod
    def _field(body: Dict[str, Any], name: str) -> str:
        value = body.get(name)
        if not isinstance(value, str) or not value:
            raise SecurityDaemonError(f"Response is missing '{name}'")
        return value

    def _module_path(self) -> str:
        module_id = quote(self._config.iotedge_moduleid, safe="")
        generation_id = quote(self._config.iotedge_modulegenerationid, safe="")
        return f"/modules/{module_id}/genid/{generation_id}"

    @staticmethod
    def _expiration(days: int) -> str:
        expires = datetime.now(timezone.utc) + timedelta(days=days)
        return expires.strftime("%Y-%m-%dT%H:%M:%SZ")

    def _resolve_endpoint(self) -> tuple[str, Optional[str]]:
        uri = urlparse(self._config.iotedge_workloaduri)

        if uri.scheme == "unix":
            return "http://workload", uri.path

        if uri.scheme in ("http", "https"):
            return self._config.iotedge_workloaduri.rstrip("/"), None

        raise SecurityDaemonError(
            f"Unsupported workload URI '{self._config.iotedge_workloaduri}'"
        )
