"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic beyond trivial
properties). Stores and the service do the work.

Layer rule: no imports from api/, web/, core/, or certs/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Identity:
    """Who is making the current request.

    Resolved exactly once per request by the identity middleware and then
    passed around as an immutable value. user is None for anonymous callers;
    token is the session token the identity was resolved from (None when no
    session was resolved).

    The anonymous sentinel is user=None rather than a magic string, so no
    signed-up user name can ever alias it.
    """

    user: str | None = None
    token: str | None = None

    @property
    def is_anonymous(self) -> bool:
        return self.user is None


ANONYMOUS = Identity()
