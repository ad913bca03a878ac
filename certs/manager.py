"""certs/manager.py -- Per-host TLS contexts selected by SNI.

The listener's SSLContext carries no certificate of its own. During each
handshake OpenSSL calls sni_callback() with the requested server name, and
the manager swaps in that host's context:

  1. Host Policy Gate: public_dir/<host> must exist right now.
  2. In-memory context cache, if the certificate is not due for renewal.
  3. Disk cache: cert_dir/<host>.crt and cert_dir/<host>.key.
  4. The issuer. The result is written to the disk cache.

Any refusal aborts the handshake with a TLS alert; HTTP never sees the
connection. Issuance runs inside the callback, and under uvicorn OpenSSL
calls it on the event-loop thread: while a certificate is being issued (a
certbot run can take tens of seconds) no other connection makes progress.
Only the first handshake for a host, or the first after renewal falls due,
pays this; later handshakes hit the cache. A per-host lock makes concurrent
handshakes for the same host wait for one issuance instead of starting
several.
"""

import logging
import os
import ssl
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from cryptography import x509

from certs.issuers import AcmeIssuer, IssuanceError, IssuedCertificate, SelfSignedIssuer
from certs.policy import HostNotAllowed, HostPolicy
from core.config import Settings
from core.hosts import is_valid_host_segment

logger = logging.getLogger("sitegate.tls")


@dataclass
class _CachedContext:
    context: ssl.SSLContext
    not_after: datetime


def _not_after(cert_pem: bytes) -> datetime:
    cert = x509.load_pem_x509_certificate(cert_pem)
    return cert.not_valid_after_utc


class CertificateManager:
    """Hand out a TLS context per allowed host, issuing certificates on demand."""

    def __init__(
        self,
        policy: HostPolicy,
        cert_dir: Path,
        issuer,
        renew_before: timedelta = timedelta(days=30),
    ) -> None:
        self.policy = policy
        self.cert_dir = Path(cert_dir)
        self.issuer = issuer
        self.renew_before = renew_before
        self._contexts: dict[str, _CachedContext] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self.cert_dir.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Cache helpers
    # ------------------------------------------------------------------

    def _lock_for(self, host: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(host, threading.Lock())

    def _paths(self, host: str) -> tuple[Path, Path]:
        return self.cert_dir / f"{host}.crt", self.cert_dir / f"{host}.key"

    def _fresh(self, not_after: datetime) -> bool:
        return datetime.now(timezone.utc) + self.renew_before < not_after

    def _load_from_disk(self, host: str) -> IssuedCertificate | None:
        cert_path, key_path = self._paths(host)
        try:
            return IssuedCertificate(cert_pem=cert_path.read_bytes(), key_pem=key_path.read_bytes())
        except FileNotFoundError:
            return None

    def _save_to_disk(self, host: str, issued: IssuedCertificate) -> None:
        cert_path, key_path = self._paths(host)
        fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(issued.key_pem)
        cert_path.write_bytes(issued.cert_pem)

    def _build_context(self, host: str) -> ssl.SSLContext:
        cert_path, key_path = self._paths(host)
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.minimum_version = ssl.TLSVersion.TLSv1_2
        context.set_alpn_protocols(["http/1.1"])
        context.load_cert_chain(certfile=str(cert_path), keyfile=str(key_path))
        return context

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_context(self, host: str) -> ssl.SSLContext:
        """Return a TLS context holding a valid certificate for host.

        Raises:
            HostNotAllowed: host has no content directory.
            IssuanceError:  the issuer failed.
            OSError:        the public root or the certificate cache is unusable.
        """
        if not is_valid_host_segment(host):
            raise HostNotAllowed(host)
        self.policy.check(host)

        cached = self._contexts.get(host)
        if cached is not None and self._fresh(cached.not_after):
            return cached.context

        with self._lock_for(host):
            cached = self._contexts.get(host)
            if cached is not None and self._fresh(cached.not_after):
                return cached.context

            issued = self._load_from_disk(host)
            if issued is None or not self._fresh(_not_after(issued.cert_pem)):
                issued = self.issuer.issue(host)
                self._save_to_disk(host, issued)
                logger.info("Stored certificate for %s in %s", host, self.cert_dir)

            context = self._build_context(host)
            self._contexts[host] = _CachedContext(context=context, not_after=_not_after(issued.cert_pem))
            return context

    def sni_callback(self, ssl_object, server_name, listener_context):
        """ssl.SSLContext.sni_callback: select the host's context or abort.

        Returns None to continue the handshake, or a TLS alert code to abort it.
        """
        if not server_name:
            logger.warning("TLS handshake without SNI rejected")
            return ssl.ALERT_DESCRIPTION_HANDSHAKE_FAILURE
        try:
            ssl_object.context = self.get_context(server_name)
        except HostNotAllowed as e:
            logger.warning("Certificate refused: %s", e)
            return ssl.ALERT_DESCRIPTION_UNRECOGNIZED_NAME
        except (IssuanceError, OSError, ValueError):
            logger.exception("Certificate unavailable for %s", server_name)
            return ssl.ALERT_DESCRIPTION_INTERNAL_ERROR
        return None

    def server_context(self) -> ssl.SSLContext:
        """Return the listener context. All certificates come from sni_callback."""
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.minimum_version = ssl.TLSVersion.TLSv1_2
        context.set_alpn_protocols(["http/1.1"])
        context.sni_callback = self.sni_callback
        return context


def build_certificate_manager(settings: Settings) -> CertificateManager:
    """Wire the policy, the configured issuer and the cache directory together."""
    if settings.issuer == "self-signed":
        issuer = SelfSignedIssuer()
    else:
        issuer = AcmeIssuer(
            email=settings.email,
            state_dir=settings.cert_dir / "acme",
            directory_url=settings.acme_directory_url,
        )
    return CertificateManager(
        policy=HostPolicy(settings.public_dir),
        cert_dir=settings.cert_dir,
        issuer=issuer,
        renew_before=timedelta(days=settings.renew_before_days),
    )
