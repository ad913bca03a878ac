"""
auth/tokens.py -- Password hashing, session token and cookie utilities.

Security design decisions:
  Passwords: bcrypt used directly (no passlib wrapper). Its cost factor makes
       brute-force expensive, and the cost is a setting so tests can run at
       the minimum of 4 rounds. bcrypt only looks at the first 72 bytes of a
       password and recent releases refuse longer input outright, so callers
       check password_too_long() before hashing.

  Session tokens: secrets.token_hex(32) gives 256 bits of entropy -- collision
       and guessing are computationally infeasible, and nothing about one token
       says anything about the next. Tokens double as file names in the
       session store, so is_well_formed_token() is checked before any lookup;
       a malformed cookie can never reach the filesystem.

  Cookie: httpOnly so page scripts cannot read it, SameSite=Strict so it is
       never attached to cross-site requests. No max_age: the session lives
       until logout.

Layer rule: no imports from api/, web/, or certs/.
"""

from __future__ import annotations

import re
import secrets

import bcrypt

COOKIE_NAME = "auth"

# bcrypt ignores everything past 72 bytes; bcrypt>=5 raises instead.
MAX_PASSWORD_BYTES = 72

_TOKEN_BYTES = 32
_TOKEN_RE = re.compile(r"[0-9a-f]{64}")

# User identifiers become a single path segment under users/ and under the
# private content root. 255 bytes is the common file name limit.
_MAX_USER_BYTES = 255
_FORBIDDEN_USER_CHARS = ("/", "\\", "\x00")


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = 12) -> str:
    """Return a salted bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A corrupt stored hash or an over-long password counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def password_too_long(plain: str) -> bool:
    return len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------


def generate_session_token() -> str:
    """Return a new session token: 64 lowercase hex chars, 256 bits of entropy."""
    return secrets.token_hex(_TOKEN_BYTES)


def is_well_formed_token(token: str | None) -> bool:
    return bool(token) and _TOKEN_RE.fullmatch(token) is not None


def is_valid_user_id(user: str) -> bool:
    """Return True if user can be used as one path segment.

    Rejects the empty string, "." and "..", separators and NUL, and anything
    longer than a file name may be.
    """
    if not user or user in (".", ".."):
        return False
    if any(c in user for c in _FORBIDDEN_USER_CHARS):
        return False
    return len(user.encode("utf-8")) <= _MAX_USER_BYTES


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str, secure: bool = True) -> None:
    """Write the session token as the httpOnly, SameSite=Strict auth cookie.

    Args:
        response: FastAPI/Starlette response object.
        token:    Session token returned by SessionStore.create().
        secure:   Only send the cookie over HTTPS. Off in tests, where
                  TestClient talks plain http.
    """
    response.set_cookie(
        COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="strict",
        secure=secure,
        path="/",
    )


def clear_session_cookie(response, secure: bool = True) -> None:
    response.delete_cookie(COOKIE_NAME, path="/", secure=secure, httponly=True, samesite="strict")
