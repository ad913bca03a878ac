"""
auth/errors.py -- Error taxonomy for credential and session operations.

Each error carries the HTTP status the route layer maps it to, in the same
spirit as a code/message/status triple: the service raises, the route
turns the exception into a response. NoSuchUser and BadPassword both derive
from InvalidCredentials so the HTTP boundary can collapse them into a
single 401 while logs keep the real reason.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for auth failures. Subclasses set code and http_status."""

    code = "auth_error"
    http_status = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"{self.code}: {message}")


class UserExists(AuthError):
    code = "user_exists"
    http_status = 400


class InvalidUser(AuthError):
    code = "invalid_user"
    http_status = 400


class InvalidPassword(AuthError):
    code = "invalid_password"
    http_status = 400


class InvalidCredentials(AuthError):
    code = "bad_credentials"
    http_status = 401


class NoSuchUser(InvalidCredentials):
    pass


class BadPassword(InvalidCredentials):
    pass


class StorageError(AuthError):
    """Reading or writing a user or session record failed. Never retried."""

    code = "storage_failure"
    http_status = 500
