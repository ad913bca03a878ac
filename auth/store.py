"""
auth/store.py -- File-backed persistence for user and session records.

Pattern: Repository. CredentialStore and SessionStore are the repositories;
the service and the identity middleware never touch the filesystem directly.

Layout under the auth directory:
  users/<user>        bcrypt hash, one file per user
  sessions/<token>    user identifier, one file per session
  tmp/                staging area for atomic writes (same filesystem)

Atomicity:
  Every record is written in full to tmp/ first, so readers never see a
  half-written record.

  Users are then published with os.link(), which fails with FileExistsError
  when the name is taken. That is an atomic create-if-absent: two concurrent
  signups for the same user produce exactly one winner and one UserExists,
  instead of a check-then-write race where the last writer wins.

  Sessions are published with os.replace(). Tokens come from a 256-bit space
  so there is nothing to arbitrate.

Layer rule: no imports from api/, web/, or certs/.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from auth.errors import NoSuchUser, StorageError, UserExists
from auth.tokens import generate_session_token, is_valid_user_id, is_well_formed_token

logger = logging.getLogger("sitegate.auth")

_RECORD_MODE = 0o600


def _stage(tmp_dir: Path, data: bytes) -> Path:
    """Write data to a fresh file in tmp_dir and return its path."""
    fd, name = tempfile.mkstemp(dir=tmp_dir, prefix="rec-")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(name, _RECORD_MODE)
    except OSError:
        Path(name).unlink(missing_ok=True)
        raise
    return Path(name)


class _RecordDir:
    """Shared plumbing: owns <auth_dir>/<kind>/ and <auth_dir>/tmp/."""

    kind = ""

    def __init__(self, auth_dir: Path) -> None:
        self.root = Path(auth_dir) / self.kind
        self.tmp_dir = Path(auth_dir) / "tmp"
        self.root.mkdir(parents=True, exist_ok=True)
        self.tmp_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.root / key


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


class CredentialStore(_RecordDir):
    """Repository for user records: user identifier -> password hash.

    Usage:
        store = CredentialStore(Path("/srv/auth"))
        store.create("alice", hash_password("secret"))
        hashed = store.get_hash("alice")

    Records are immutable once created; there is no update or delete.
    Callers validate user identifiers first (is_valid_user_id); the store
    re-checks and treats an invalid identifier as a user that cannot exist.
    """

    kind = "users"

    def exists(self, user: str) -> bool:
        return is_valid_user_id(user) and self._path(user).is_file()

    def create(self, user: str, password_hash: str) -> None:
        """Persist a new user record.

        Raises:
            UserExists:   A record for user is already present.
            StorageError: The record could not be staged or published.
        """
        if not is_valid_user_id(user):
            raise StorageError("refusing to store an invalid user identifier")
        try:
            staged = _stage(self.tmp_dir, password_hash.encode("utf-8"))
        except OSError as e:
            logger.error("Failed to stage user record: %s", e)
            raise StorageError("failed to write user record") from e
        try:
            os.link(staged, self._path(user))
        except FileExistsError:
            raise UserExists(f"user {user!r} already exists") from None
        except OSError as e:
            logger.error("Failed to publish user record: %s", e)
            raise StorageError("failed to write user record") from e
        finally:
            staged.unlink(missing_ok=True)

    def get_hash(self, user: str) -> str:
        """Return the stored hash for user.

        Raises:
            NoSuchUser:   No record exists (or the identifier is not storable).
            StorageError: The record exists but could not be read.
        """
        if not is_valid_user_id(user):
            raise NoSuchUser(f"user {user!r} not found")
        try:
            return self._path(user).read_text(encoding="utf-8")
        except FileNotFoundError:
            raise NoSuchUser(f"user {user!r} not found") from None
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Failed to read user record: %s", e)
            raise StorageError("failed to read user record") from e


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class SessionStore(_RecordDir):
    """Repository for session records: token -> user identifier."""

    kind = "sessions"

    def create(self, user: str) -> str:
        """Issue a new session for user and return its token.

        Raises:
            StorageError: The session record could not be written.
        """
        token = generate_session_token()
        try:
            staged = _stage(self.tmp_dir, user.encode("utf-8"))
        except OSError as e:
            logger.error("Failed to stage session record: %s", e)
            raise StorageError("failed to write session record") from e
        try:
            os.replace(staged, self._path(token))
        except OSError as e:
            staged.unlink(missing_ok=True)
            logger.error("Failed to publish session record: %s", e)
            raise StorageError("failed to write session record") from e
        return token

    def resolve(self, token: str | None) -> str | None:
        """Return the user a token belongs to, or None.

        Never raises: malformed tokens, unknown tokens and unreadable records
        all come back as None and the caller treats the request as anonymous.
        """
        if not is_well_formed_token(token):
            return None
        try:
            user = self._path(token).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return None
        return user if is_valid_user_id(user) else None

    def destroy(self, token: str | None) -> bool:
        """Delete a session record. Returns True if a record was removed.

        Raises:
            StorageError: The record exists but could not be removed.
        """
        if not is_well_formed_token(token):
            return False
        try:
            self._path(token).unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error("Failed to delete session record: %s", e)
            raise StorageError("failed to delete session record") from e
        return True
