"""
tests/conftest.py -- Shared fixtures for sitegate tests.

This module provides:
  - dirs: an isolated public/private/certs/logs/auth tree under tmp_path
  - settings: Settings pointing at that tree, bcrypt at minimum cost,
    rate limiting off, cookies without the Secure flag (TestClient is http)
  - client: TestClient over create_app(settings), lifespan running
  - write_file(): helper to drop content into a tree

Design: every test gets its own directory tree and its own app. Nothing is
shared between tests, so ordering never matters.
"""

from __future__ import annotations

from collections.abc import Generator
from dataclasses import dataclass
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from asgi import create_app
from core.config import Settings

HOST = "example.test"


@dataclass
class Dirs:
    public: Path
    private: Path
    certs: Path
    logs: Path
    auth: Path


def write_file(root: Path, relative: str, content: bytes) -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return path


@pytest.fixture
def dirs(tmp_path: Path) -> Dirs:
    d = Dirs(
        public=tmp_path / "public",
        private=tmp_path / "private",
        certs=tmp_path / "certs",
        logs=tmp_path / "logs",
        auth=tmp_path / "auth",
    )
    for path in (d.public, d.private, d.certs, d.logs, d.auth):
        path.mkdir()
    (d.public / HOST).mkdir()
    return d


def make_settings(dirs: Dirs, **overrides) -> Settings:
    values = dict(
        public_dir=dirs.public,
        private_dir=dirs.private,
        cert_dir=dirs.certs,
        logs_dir=dirs.logs,
        auth_dir=dirs.auth,
        email="ops@example.test",
        issuer="self-signed",
        bcrypt_rounds=4,
        rate_limit_enabled=False,
        secure_cookies=False,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings(dirs: Dirs) -> Settings:
    return make_settings(dirs)


@pytest.fixture
def client(settings: Settings) -> Generator[TestClient, None, None]:
    """TestClient whose requests carry Host: example.test by default."""
    app = create_app(settings)
    with TestClient(app, base_url=f"http://{HOST}", raise_server_exceptions=True) as c:
        yield c
