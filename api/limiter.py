"""
api/limiter.py -- slowapi rate limiter factory.

One Limiter per application, attached to app.state.limiter where
SlowAPIMiddleware looks for it by convention. The login route registers its
limit against the same instance, so all requests share one in-memory
counter store. Building it per application (rather than at import time)
keeps the limit and the on/off switch in Settings and keeps test apps from
sharing counters.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import Settings


def create_limiter(settings: Settings) -> Limiter:
    return Limiter(
        key_func=get_remote_address,
        storage_uri="memory://",
        enabled=settings.rate_limit_enabled,
    )
