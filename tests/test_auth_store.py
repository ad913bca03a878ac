"""
tests/test_auth_store.py -- Unit tests for the file-backed credential and session stores.

Coverage:
  - CredentialStore: create/get_hash round trip, UserExists, NoSuchUser,
    invalid identifiers never reach the filesystem, staging area left clean
  - SessionStore: token shape, resolve of issued/unknown/malformed tokens,
    destroy, token distinctness and uniform hex distribution
"""

from __future__ import annotations

import stat
from collections import Counter
from pathlib import Path

import pytest

from auth.errors import NoSuchUser, StorageError, UserExists
from auth.store import CredentialStore, SessionStore
from auth.tokens import generate_session_token, is_well_formed_token


@pytest.fixture
def credentials(tmp_path: Path) -> CredentialStore:
    return CredentialStore(tmp_path / "auth")


@pytest.fixture
def sessions(tmp_path: Path) -> SessionStore:
    return SessionStore(tmp_path / "auth")


class TestCredentialStore:
    def test_create_then_get_hash(self, credentials: CredentialStore) -> None:
        credentials.create("alice", "$2b$04$hash")
        assert credentials.get_hash("alice") == "$2b$04$hash"
        assert credentials.exists("alice")

    def test_record_is_one_file_per_user(self, credentials: CredentialStore, tmp_path: Path) -> None:
        credentials.create("alice", "h1")
        record = tmp_path / "auth" / "users" / "alice"
        assert record.read_text() == "h1"
        assert stat.S_IMODE(record.stat().st_mode) == 0o600

    def test_staging_area_is_empty_after_create(self, credentials: CredentialStore, tmp_path: Path) -> None:
        credentials.create("alice", "h1")
        with pytest.raises(UserExists):
            credentials.create("alice", "h2")
        assert list((tmp_path / "auth" / "tmp").iterdir()) == []

    def test_second_create_raises_user_exists_and_keeps_first_hash(self, credentials: CredentialStore) -> None:
        credentials.create("alice", "first")
        with pytest.raises(UserExists):
            credentials.create("alice", "second")
        assert credentials.get_hash("alice") == "first"

    def test_unknown_user_raises_no_such_user(self, credentials: CredentialStore) -> None:
        with pytest.raises(NoSuchUser):
            credentials.get_hash("nobody")
        assert not credentials.exists("nobody")

    @pytest.mark.parametrize("user", ["", ".", "..", "../escape", "a/b", "nul\x00byte"])
    def test_invalid_identifiers_never_touch_disk(self, credentials: CredentialStore, user: str) -> None:
        with pytest.raises(StorageError):
            credentials.create(user, "h")
        with pytest.raises(NoSuchUser):
            credentials.get_hash(user)
        assert not credentials.exists(user)

    def test_staging_failure_is_storage_error(self, credentials: CredentialStore, monkeypatch) -> None:
        def boom(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr("auth.store._stage", boom)
        with pytest.raises(StorageError):
            credentials.create("alice", "h")
        assert not credentials.exists("alice")


class TestSessionStore:
    def test_create_returns_well_formed_token(self, sessions: SessionStore) -> None:
        token = sessions.create("alice")
        assert len(token) == 64
        assert is_well_formed_token(token)

    def test_record_holds_user_identifier(self, sessions: SessionStore, tmp_path: Path) -> None:
        token = sessions.create("alice")
        assert (tmp_path / "auth" / "sessions" / token).read_text() == "alice"

    def test_resolve_issued_token(self, sessions: SessionStore) -> None:
        token = sessions.create("alice")
        assert sessions.resolve(token) == "alice"

    def test_resolve_unknown_token(self, sessions: SessionStore) -> None:
        assert sessions.resolve(generate_session_token()) is None

    @pytest.mark.parametrize(
        "token",
        [None, "", "abc", "../users/alice", "A" * 64, "g" * 64, "0" * 63, "0" * 65, "0" * 64 + "\n"],
    )
    def test_resolve_malformed_token_is_none(self, sessions: SessionStore, token) -> None:
        assert sessions.resolve(token) is None

    def test_issued_token_with_trailing_newline_is_rejected(self, sessions: SessionStore) -> None:
        token = sessions.create("alice")
        assert not is_well_formed_token(token + "\n")
        assert sessions.resolve(token + "\n") is None
        assert sessions.destroy(token + "\n") is False
        assert sessions.resolve(token) == "alice"

    def test_resolve_does_not_follow_traversal(self, sessions: SessionStore, tmp_path: Path) -> None:
        """A token shaped like a path into users/ must not read a user record."""
        users = tmp_path / "auth" / "users"
        users.mkdir(parents=True, exist_ok=True)
        (users / "victim").write_text("victim")
        assert sessions.resolve("../users/victim") is None

    def test_destroy_removes_record(self, sessions: SessionStore) -> None:
        token = sessions.create("alice")
        assert sessions.destroy(token) is True
        assert sessions.resolve(token) is None
        assert sessions.destroy(token) is False

    def test_destroy_malformed_token(self, sessions: SessionStore) -> None:
        assert sessions.destroy("../users/alice") is False
        assert sessions.destroy(None) is False

    def test_write_failure_is_storage_error(self, sessions: SessionStore, monkeypatch) -> None:
        def boom(*args, **kwargs):
            raise OSError("read-only filesystem")

        monkeypatch.setattr("auth.store.os.replace", boom)
        with pytest.raises(StorageError):
            sessions.create("alice")

    def test_store_tokens_are_distinct(self, sessions: SessionStore) -> None:
        tokens = {sessions.create("alice") for _ in range(300)}
        assert len(tokens) == 300
        assert all(sessions.resolve(t) == "alice" for t in tokens)


class TestTokenEntropy:
    def test_ten_thousand_tokens_pairwise_distinct(self) -> None:
        tokens = [generate_session_token() for _ in range(10_000)]
        assert len(set(tokens)) == len(tokens)
        assert all(is_well_formed_token(t) for t in tokens)

    def test_hex_digits_are_uniform(self) -> None:
        """640,000 hex digits: each of the 16 should appear within 5% of 40,000."""
        counts = Counter("".join(generate_session_token() for _ in range(10_000)))
        assert set(counts) == set("0123456789abcdef")
        for digit, n in counts.items():
            assert 38_000 < n < 42_000, f"digit {digit!r} appeared {n} times"

    def test_no_shared_prefix_structure(self) -> None:
        """Successive tokens must not share leading characters beyond chance."""
        tokens = [generate_session_token() for _ in range(2_000)]
        prefixes = Counter(t[:4] for t in tokens)
        assert max(prefixes.values()) < 10
