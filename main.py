#!/usr/bin/env python3
"""
sitegate -- Static HTTPS virtual hosting with per-user private trees.

Every subdirectory of the public root is a virtual host. Certificates are
obtained automatically on the first TLS handshake for a host whose directory
exists, and cached in the certificate directory.

Usage:
  python main.py PUBLIC PRIVATE CERTS LOGS AUTH EMAIL
  python main.py PUBLIC PRIVATE CERTS LOGS AUTH EMAIL --port 8443 --issuer self-signed
  python main.py PUBLIC PRIVATE CERTS LOGS AUTH EMAIL --acme-directory https://acme-staging-v02.api.letsencrypt.org/directory

Positional arguments map onto Settings fields; any Settings field not given
on the command line can come from a SITEGATE_* environment variable or .env.
"""

import argparse
import logging
import sys

import uvicorn
from pydantic import ValidationError

from asgi import create_app
from certs.manager import build_certificate_manager
from core.config import Settings

logger = logging.getLogger("sitegate")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sitegate",
        description="Serve static files over HTTPS for every host directory under PUBLIC.",
    )
    parser.add_argument("public_dir", help="Public content root: one subdirectory per host")
    parser.add_argument("private_dir", help="Private content root: <user>/<host>/...")
    parser.add_argument("cert_dir", help="Certificate cache directory")
    parser.add_argument("logs_dir", help="Directory for per-request JSON records")
    parser.add_argument("auth_dir", help="Directory for user and session records")
    parser.add_argument("email", nargs="?", default=None, help="Contact email for ACME registration")
    parser.add_argument("--bind", default=None, help="Address to bind (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="Port to listen on (default: 443)")
    parser.add_argument("--issuer", choices=["acme", "self-signed"], default=None, help="Certificate source")
    parser.add_argument("--acme-directory", dest="acme_directory_url", default=None, help="ACME directory URL")
    parser.add_argument("--bcrypt-rounds", type=int, default=None, help="bcrypt cost factor (4-31)")
    parser.add_argument("--login-rate-limit", default=None, help='Login attempts per client, e.g. "10/minute"')
    parser.add_argument(
        "--no-rate-limit", dest="rate_limit_enabled", action="store_false", default=None,
        help="Disable login rate limiting",
    )
    parser.add_argument(
        "--insecure-cookies", dest="secure_cookies", action="store_false", default=None,
        help="Send the auth cookie without the Secure flag",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default: INFO)")
    return parser


def settings_from_args(args: argparse.Namespace) -> Settings:
    """Build Settings: command-line values win, unset options fall back to env/defaults."""
    overrides = {k: v for k, v in vars(args).items() if v is not None}
    return Settings(**overrides)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def serve(settings: Settings) -> None:
    """Run the HTTPS server until interrupted.

    uvicorn builds no TLS context of its own here; the certificate manager's
    listener context (SNI-driven, one certificate per allowed host) is
    installed after Config.load() and before the server starts.
    """
    app = create_app(settings)
    manager = build_certificate_manager(settings)
    config = uvicorn.Config(
        app,
        host=settings.bind,
        port=settings.port,
        log_config=None,
        proxy_headers=False,
        server_header=False,
    )
    config.load()
    config.ssl = manager.server_context()
    logger.info("Serving https://%s:%d (issuer: %s)", settings.bind, settings.port, settings.issuer)
    uvicorn.Server(config).run()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = settings_from_args(args)
    except ValidationError as e:
        print(f"  [!] Invalid configuration:\n{e}", file=sys.stderr)
        return 2
    _configure_logging(settings.log_level)
    serve(settings)
    return 0


if __name__ == "__main__":
    sys.exit(main())
