"""
auth/service.py -- Signup, login and logout on top of the two stores.

Session lifecycle per client: Anonymous -> Authenticated (login) ->
Anonymous (logout deletes the session record, or the record disappears).

Security:
  [C1] login() always runs bcrypt, against a dummy hash when the user does
       not exist, so response time does not reveal which user names exist.
       The caller only ever sees InvalidCredentials; the log records whether
       it was NoSuchUser or BadPassword.
  Plaintext passwords and session tokens are never logged.

Every method here does blocking work (bcrypt, file I/O). Async callers run
them through starlette.concurrency.run_in_threadpool.
"""

from __future__ import annotations

import logging

from auth.errors import BadPassword, InvalidCredentials, InvalidPassword, InvalidUser, NoSuchUser
from auth.models import Identity
from auth.store import CredentialStore, SessionStore
from auth.tokens import hash_password, is_valid_user_id, password_too_long, verify_password

logger = logging.getLogger("sitegate.auth")


class AuthService:
    """Credential checks and session issuance.

    Usage:
        service = AuthService(CredentialStore(auth_dir), SessionStore(auth_dir), bcrypt_rounds=12)
        service.signup("alice", "secret")
        token = service.login("alice", "secret")
        service.logout(Identity(user="alice", token=token))
    """

    def __init__(self, credentials: CredentialStore, sessions: SessionStore, bcrypt_rounds: int = 12) -> None:
        self.credentials = credentials
        self.sessions = sessions
        self.bcrypt_rounds = bcrypt_rounds
        # Same cost as real hashes so the unknown-user path takes as long [C1].
        self._dummy_hash = hash_password("sitegate_timing_dummy", bcrypt_rounds)

    def signup(self, user: str, password: str) -> None:
        """Create a user record.

        Raises:
            InvalidUser:     user is not a usable identifier.
            InvalidPassword: password is longer than bcrypt accepts.
            UserExists:      user already has a record.
            StorageError:    the record could not be written.
        """
        if not is_valid_user_id(user):
            raise InvalidUser("user must be a non-empty name without path separators")
        if password_too_long(password):
            raise InvalidPassword("password must be at most 72 bytes")
        self.credentials.create(user, hash_password(password, self.bcrypt_rounds))
        logger.info("Created user %r", user)

    def verify(self, user: str, password: str) -> None:
        """Check a password.

        Raises:
            NoSuchUser:   no record for user.
            BadPassword:  record exists, password does not match.
            StorageError: the record could not be read.
        """
        try:
            hashed = self.credentials.get_hash(user)
        except NoSuchUser:
            verify_password(password, self._dummy_hash)
            raise
        if not verify_password(password, hashed):
            raise BadPassword(f"wrong password for {user!r}")

    def login(self, user: str, password: str) -> str:
        """Verify credentials and issue a session token.

        Raises:
            InvalidCredentials: unknown user or wrong password.
            StorageError:       reading the user or writing the session failed.
        """
        try:
            self.verify(user, password)
        except InvalidCredentials as e:
            logger.debug("Login rejected: %s", e)
            raise InvalidCredentials("invalid user or password") from None
        token = self.sessions.create(user)
        logger.info("User %r logged in", user)
        return token

    def logout(self, identity: Identity) -> bool:
        """Invalidate the session the identity was resolved from.

        Returns True if a session record was deleted. Anonymous identities
        have nothing to delete.
        """
        if identity.is_anonymous:
            return False
        removed = self.sessions.destroy(identity.token)
        if removed:
            logger.info("User %r logged out", identity.user)
        return removed
