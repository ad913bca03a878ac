"""certs/issuers.py -- Obtain a certificate for one hostname.

An issuer is anything with issue(host) -> IssuedCertificate. The manager
calls it only for hosts the Host Policy Gate already allowed, and only when
the disk cache has nothing usable.

Two implementations:
  AcmeIssuer        certbot in standalone mode against an ACME directory
                    (Let's Encrypt by default). certbot answers the http-01
                    challenge itself on port 80.
  SelfSignedIssuer  EC P-256 certificate signed by its own key, generated
                    with `cryptography`. For development and tests.
"""

import logging
import shutil
import subprocess
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

logger = logging.getLogger("sitegate.tls")

DEFAULT_SELF_SIGNED_DAYS = 90


class IssuanceError(Exception):
    """The issuer could not produce a certificate for host."""

    def __init__(self, host: str, message: str):
        self.host = host
        self.message = message
        super().__init__(f"{host}: {message}")


@dataclass
class IssuedCertificate:
    """PEM-encoded certificate chain and private key."""

    cert_pem: bytes
    key_pem: bytes


class SelfSignedIssuer:
    """Generate a self-signed certificate with SAN = host."""

    def __init__(self, days: int = DEFAULT_SELF_SIGNED_DAYS) -> None:
        self.days = days

    def issue(self, host: str) -> IssuedCertificate:
        logger.info("Generating self-signed certificate for %s", host)
        key = ec.generate_private_key(ec.SECP256R1())
        now = datetime.now(timezone.utc)
        try:
            name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, host)])
            cert = (
                x509.CertificateBuilder()
                .subject_name(name)
                .issuer_name(name)
                .public_key(key.public_key())
                .serial_number(x509.random_serial_number())
                .not_valid_before(now - timedelta(minutes=5))
                .not_valid_after(now + timedelta(days=self.days))
                .add_extension(x509.SubjectAlternativeName([x509.DNSName(host)]), critical=False)
                .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
                .sign(key, hashes.SHA256())
            )
        except ValueError as e:
            raise IssuanceError(host, f"cannot build certificate: {e}") from e
        return IssuedCertificate(
            cert_pem=cert.public_bytes(serialization.Encoding.PEM),
            key_pem=key.private_bytes(
                serialization.Encoding.PEM,
                serialization.PrivateFormat.PKCS8,
                serialization.NoEncryption(),
            ),
        )


class AcmeIssuer:
    """Obtain a certificate from an ACME CA by running certbot.

    certbot keeps its account and lineage state under state_dir, so repeated
    calls for a host reuse the existing lineage and only hit the CA when the
    certificate is actually due.
    """

    def __init__(self, email: str, state_dir: Path, directory_url: str, certbot: str = "certbot") -> None:
        self.email = email
        self.state_dir = Path(state_dir)
        self.directory_url = directory_url
        self.certbot = certbot

    def _command(self, host: str) -> list[str]:
        return [
            self.certbot, "certonly",
            "--non-interactive",
            "--agree-tos",
            "--email", self.email,
            "--standalone",
            "--keep-until-expiring",
            "--server", self.directory_url,
            "--config-dir", str(self.state_dir / "config"),
            "--work-dir", str(self.state_dir / "work"),
            "--logs-dir", str(self.state_dir / "logs"),
            "--cert-name", host,
            "-d", host,
        ]

    def issue(self, host: str) -> IssuedCertificate:
        """Run certbot for host and return the resulting lineage.

        Raises:
            IssuanceError: certbot is missing, fails, or leaves no files behind.
        """
        if shutil.which(self.certbot) is None:
            raise IssuanceError(host, f"{self.certbot} not found on PATH")

        logger.info("Requesting ACME certificate for %s from %s", host, self.directory_url)
        try:
            subprocess.run(self._command(host), check=True, capture_output=True, text=True)
        except subprocess.CalledProcessError as e:
            logger.error("certbot failed for %s: %s", host, e.stderr.strip())
            raise IssuanceError(host, f"certbot exited with status {e.returncode}") from e

        live = self.state_dir / "config" / "live" / host
        try:
            return IssuedCertificate(
                cert_pem=(live / "fullchain.pem").read_bytes(),
                key_pem=(live / "privkey.pem").read_bytes(),
            )
        except OSError as e:
            raise IssuanceError(host, f"certbot left no certificate in {live}") from e
