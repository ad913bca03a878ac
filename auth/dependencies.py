"""
auth/dependencies.py -- Identity resolution and the FastAPI Depends() helper.

resolve_identity() turns the auth cookie into an Identity. It runs exactly
once per request, in the identity middleware (api/main.py), and the result
is parked on request.state.identity. Handlers read it back through
get_identity() instead of re-deriving it from cookies.

Resolution never fails: no cookie, a malformed token, an unknown token or an
unreadable session record all resolve to ANONYMOUS.

Layer rule: no imports from web/ or certs/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.models import ANONYMOUS, Identity
from auth.store import SessionStore
from auth.tokens import COOKIE_NAME


def resolve_identity(request: Request, sessions: SessionStore) -> Identity:
    """Return the Identity for the request's auth cookie, or ANONYMOUS."""
    token = request.cookies.get(COOKIE_NAME)
    if not token:
        return ANONYMOUS
    user = sessions.resolve(token)
    if user is None:
        return ANONYMOUS
    return Identity(user=user, token=token)


def get_identity(request: Request) -> Identity:
    """Return the identity resolved by the middleware for this request.

    Use as a FastAPI dependency:
        @router.get("/thing")
        async def route(identity: Identity = Depends(get_identity)): ...
    """
    return getattr(request.state, "identity", ANONYMOUS)
