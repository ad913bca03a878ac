"""
tests/test_config.py -- Settings validation and the command line.

Coverage:
  - Settings: defaults, SITEGATE_* environment, keyword arguments win,
    ACME needs an email, bounds on port and bcrypt cost
  - CLI: positional directories and options map onto Settings fields,
    invalid configuration exits with status 2 before serving
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

import main as cli
from core.config import LETSENCRYPT_DIRECTORY, Settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path: Path) -> None:
    """No SITEGATE_* leakage from the host environment or a stray .env."""
    for name in list(os.environ):
        if name.startswith("SITEGATE_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)


def _dirs(tmp_path: Path) -> dict[str, Path]:
    return {
        "public_dir": tmp_path / "public",
        "private_dir": tmp_path / "private",
        "cert_dir": tmp_path / "certs",
        "auth_dir": tmp_path / "auth",
    }


class TestSettings:
    def test_defaults(self, tmp_path: Path) -> None:
        s = Settings(**_dirs(tmp_path), email="ops@example.test")
        assert s.issuer == "acme"
        assert s.port == 443
        assert s.bind == "0.0.0.0"
        assert s.acme_directory_url == LETSENCRYPT_DIRECTORY
        assert s.bcrypt_rounds == 12
        assert s.secure_cookies is True
        assert s.rate_limit_enabled is True
        assert s.logs_dir is None

    def test_acme_requires_email(self, tmp_path: Path) -> None:
        with pytest.raises(ValidationError, match="email is required"):
            Settings(**_dirs(tmp_path))

    def test_self_signed_needs_no_email(self, tmp_path: Path) -> None:
        assert Settings(**_dirs(tmp_path), issuer="self-signed").email == ""

    def test_reads_environment(self, tmp_path: Path, monkeypatch) -> None:
        for field, path in _dirs(tmp_path).items():
            monkeypatch.setenv(f"SITEGATE_{field.upper()}", str(path))
        monkeypatch.setenv("SITEGATE_EMAIL", "env@example.test")
        monkeypatch.setenv("SITEGATE_PORT", "8443")
        s = Settings()
        assert s.public_dir == tmp_path / "public"
        assert s.email == "env@example.test"
        assert s.port == 8443

    def test_keyword_arguments_beat_environment(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setenv("SITEGATE_PORT", "8443")
        s = Settings(**_dirs(tmp_path), email="ops@example.test", port=9443)
        assert s.port == 9443

    @pytest.mark.parametrize("field,value", [("port", 0), ("port", 70000), ("bcrypt_rounds", 3), ("issuer", "mystery")])
    def test_out_of_range(self, tmp_path: Path, field: str, value) -> None:
        with pytest.raises(ValidationError):
            Settings(**_dirs(tmp_path), email="ops@example.test", **{field: value})


class TestCommandLine:
    ARGS = ["pub", "priv", "certs", "logs", "auth"]

    def test_positionals_map_to_settings(self) -> None:
        args = cli.build_parser().parse_args(self.ARGS + ["ops@example.test"])
        s = cli.settings_from_args(args)
        assert s.public_dir == Path("pub")
        assert s.private_dir == Path("priv")
        assert s.cert_dir == Path("certs")
        assert s.logs_dir == Path("logs")
        assert s.auth_dir == Path("auth")
        assert s.email == "ops@example.test"

    def test_options_override_defaults(self) -> None:
        args = cli.build_parser().parse_args(
            self.ARGS
            + [
                "--issuer", "self-signed",
                "--port", "8443",
                "--bind", "127.0.0.1",
                "--bcrypt-rounds", "10",
                "--login-rate-limit", "3/minute",
                "--no-rate-limit",
                "--insecure-cookies",
                "--acme-directory", "https://acme.invalid/dir",
            ]
        )
        s = cli.settings_from_args(args)
        assert s.issuer == "self-signed"
        assert s.port == 8443
        assert s.bind == "127.0.0.1"
        assert s.bcrypt_rounds == 10
        assert s.login_rate_limit == "3/minute"
        assert s.rate_limit_enabled is False
        assert s.secure_cookies is False
        assert s.acme_directory_url == "https://acme.invalid/dir"

    def test_unset_flags_keep_defaults(self) -> None:
        s = cli.settings_from_args(cli.build_parser().parse_args(self.ARGS + ["ops@example.test"]))
        assert s.rate_limit_enabled is True
        assert s.secure_cookies is True

    def test_missing_positionals_exit(self) -> None:
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["pub", "priv"])

    def test_invalid_configuration_returns_2(self, monkeypatch, capsys) -> None:
        served = []
        monkeypatch.setattr(cli, "serve", served.append)
        assert cli.main(self.ARGS) == 2
        assert served == []
        assert "Invalid configuration" in capsys.readouterr().err

    def test_main_serves_settings(self, monkeypatch) -> None:
        served = []
        monkeypatch.setattr(cli, "serve", served.append)
        monkeypatch.setattr(cli, "_configure_logging", lambda level: None)
        assert cli.main(self.ARGS + ["ops@example.test", "--port", "8443"]) == 0
        (settings,) = served
        assert settings.port == 8443
        assert settings.email == "ops@example.test"
