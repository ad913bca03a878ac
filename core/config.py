"""
core/config.py -- Centralized server configuration via pydantic-settings.

All environment variable reads for sitegate happen here. No module should
call os.getenv() or os.environ.get() directly -- build a Settings once at
startup and pass it down.

Design patterns used:
  Explicit settings object: main.py builds exactly one Settings from the
      command line (positional directories, options) layered over the
      environment, then hands it to create_app() and the certificate manager.
      There is no module-level singleton, so tests can build as many
      isolated Settings objects as they like.

  BaseSettings (pydantic-settings): Reads values from SITEGATE_* environment
      variables and an optional .env file. Keyword arguments passed to the
      constructor win over the environment, which is how CLI values override.

  @model_validator(mode="after"): Cross-field validation once every field is
      resolved. ACME issuance needs a contact email; self-signed does not.

Layer rule: core/ is the kernel. This module may not import from api/, web/,
auth/, or certs/.
"""

import logging
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("sitegate.config")

LETSENCRYPT_DIRECTORY = "https://acme-v02.api.letsencrypt.org/directory"


class Settings(BaseSettings):
    """Server settings loaded from keyword arguments, environment and .env file.

    Environment variable name mapping: SITEGATE_ prefix plus the uppercased
    field name. E.g. `public_dir` reads from SITEGATE_PUBLIC_DIR.
    """

    model_config = SettingsConfigDict(
        env_prefix="SITEGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Content and state directories
    # ------------------------------------------------------------------

    public_dir: Path
    private_dir: Path
    cert_dir: Path
    auth_dir: Path
    # None disables the per-request JSON log.
    logs_dir: Optional[Path] = None

    # ------------------------------------------------------------------
    # Listener
    # ------------------------------------------------------------------

    bind: str = "0.0.0.0"
    port: int = Field(default=443, ge=1, le=65535)

    # ------------------------------------------------------------------
    # Certificates
    # ------------------------------------------------------------------

    issuer: Literal["acme", "self-signed"] = "acme"
    email: str = ""
    acme_directory_url: str = LETSENCRYPT_DIRECTORY
    renew_before_days: int = Field(default=30, ge=1)

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    # bcrypt cost factor. 12 is the bcrypt library default; tests use 4.
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    secure_cookies: bool = True
    login_rate_limit: str = "10/minute"
    rate_limit_enabled: bool = True

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    log_level: str = "INFO"

    @model_validator(mode="after")
    def validate_issuer(self) -> "Settings":
        """ACME accounts are registered with a contact email; refuse to start without one."""
        if self.issuer == "acme" and not self.email:
            raise ValueError("email is required when issuer is 'acme'.")
        if self.issuer == "self-signed":
            logger.warning("Using self-signed certificates. Browsers will not trust them.")
        return self
