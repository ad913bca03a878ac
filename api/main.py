"""
api/main.py -- FastAPI application factory for sitegate.

create_api(settings) builds the application core: stores, auth service,
request log, middleware, exception handlers and the /auth router. The
content router is mounted by asgi.py, not here.

Middleware stack (outermost to innermost):
  1. log_requests      -- one INFO line per request with status and latency
  2. record_requests   -- JSON record of every request written to logs_dir
  3. attach_identity   -- resolves the auth cookie into request.state.identity
  4. SlowAPIMiddleware -- enforces per-route rate limits (login)

Starlette wraps middleware in reverse registration order, so they are
registered innermost-first below.

Everything hangs off app.state and the Settings object passed in; there is
no module-level configuration, so tests can build as many isolated apps as
they like.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import parse_qs, parse_qsl, urlencode

from fastapi import FastAPI, Request
from fastapi.responses import Response
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import create_limiter
from api.responses import error_response
from api.routes.auth import create_auth_router
from auth.dependencies import resolve_identity
from auth.service import AuthService
from auth.store import CredentialStore, SessionStore
from auth.tokens import COOKIE_NAME
from core.config import Settings
from core.hosts import list_hosts
from core.requestlog import RequestLog, RequestRecord, canonical_header_name

logger = logging.getLogger("sitegate.api")

VERSION = "0.3.0"

# Request records never hold passwords or live session tokens.
_REDACTED = "REDACTED"
_SESSION_COOKIE_RE = re.compile(rf"((?:^|;)\s*{COOKIE_NAME}=)[^;]*")


def _client_address(request: Request) -> str:
    if request.client is None:
        return ""
    return f"{request.client.host}:{request.client.port}"


def _redact_body(request: Request, body: bytes) -> bytes:
    """Blank the password field of /auth form posts; other bodies pass through.

    Auth bodies that are not urlencoded forms are dropped entirely.
    """
    path = request.url.path
    if not body or not (path == "/auth" or path.startswith("/auth/")):
        return body
    if not request.headers.get("content-type", "").startswith("application/x-www-form-urlencoded"):
        return b""
    fields = parse_qsl(body.decode("latin-1"), keep_blank_values=True)
    redacted = [(k, _REDACTED if k == "pass" else v) for k, v in fields]
    return urlencode(redacted).encode("latin-1")


def _build_record(request: Request, body: bytes) -> RequestRecord:
    headers: dict[str, list[str]] = {}
    for raw_name, raw_value in request.headers.raw:
        name = raw_name.decode("latin-1")
        if name.lower() == "host":
            continue
        value = raw_value.decode("latin-1")
        if name.lower() == "cookie":
            value = _SESSION_COOKIE_RE.sub(rf"\g<1>{_REDACTED}", value)
        headers.setdefault(canonical_header_name(name), []).append(value)
    body = _redact_body(request, body)
    return RequestRecord(
        from_ip=_client_address(request),
        method=request.method,
        host=request.headers.get("host", ""),
        path=request.url.path,
        query=parse_qs(request.url.query, keep_blank_values=True),
        headers=headers,
        body=body,
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Log what the server is about to serve; nothing to tear down.

    The host list is informational only. Routing and the certificate gate
    both look at the directory again on every request or handshake.
    """
    settings: Settings = app.state.settings
    logger.info("sitegate %s starting up", VERSION)
    try:
        hosts = list_hosts(settings.public_dir)
        logger.info("Configured hosts: %s", ", ".join(hosts) or "(none)")
    except OSError as e:
        logger.warning("Public root %s is not readable: %s", settings.public_dir, e)
    if app.state.request_log is None:
        logger.info("Request logging disabled (no logs directory)")

    yield

    logger.info("sitegate shutdown complete")


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_api(settings: Settings) -> FastAPI:
    """Build the application core for one Settings object."""
    app = FastAPI(
        title="sitegate",
        version=VERSION,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    credentials = CredentialStore(settings.auth_dir)
    sessions = SessionStore(settings.auth_dir)
    limiter = create_limiter(settings)

    app.state.settings = settings
    app.state.credentials = credentials
    app.state.sessions = sessions
    app.state.auth_service = AuthService(credentials, sessions, bcrypt_rounds=settings.bcrypt_rounds)
    app.state.request_log = RequestLog(settings.logs_dir) if settings.logs_dir is not None else None
    # SlowAPI looks for app.state.limiter by convention.
    app.state.limiter = limiter

    # ------------------------------------------------------------------
    # Middleware (innermost first)
    # ------------------------------------------------------------------

    app.add_middleware(SlowAPIMiddleware)

    @app.middleware("http")
    async def attach_identity(request: Request, call_next):
        """Resolve the caller once; handlers read request.state.identity."""
        request.state.identity = await run_in_threadpool(resolve_identity, request, sessions)
        return await call_next(request)

    @app.middleware("http")
    async def record_requests(request: Request, call_next):
        """Write the request's JSON record before dispatching it.

        A body that cannot be read aborts the request (the exception
        propagates). A record that cannot be written is logged and the
        request goes ahead.
        """
        request_log: RequestLog | None = request.app.state.request_log
        if request_log is not None:
            body = await request.body()
            record = _build_record(request, body)
            try:
                await run_in_threadpool(request_log.write, record)
            except OSError as e:
                logger.warning("Failed to write request record: %s", e)
        return await call_next(request)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        ms = (time.perf_counter() - start) * 1000
        logger.info(
            "%s %s%s %d %.1fms %s",
            request.method,
            request.headers.get("host", ""),
            request.url.path,
            response.status_code,
            ms,
            request.client.host if request.client else "unknown",
        )
        return response

    # ------------------------------------------------------------------
    # Routers
    # ------------------------------------------------------------------

    app.include_router(create_auth_router(limiter, settings.login_rate_limit), tags=["Auth"])

    # ------------------------------------------------------------------
    # Exception handlers
    # ------------------------------------------------------------------

    @app.exception_handler(RateLimitExceeded)
    def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> Response:
        """Return 429 when a rate limit is exceeded.

        Sync so it works for both callers: the login decorator raises
        through the normal exception middleware, and SlowAPIMiddleware
        calls the registered handler without awaiting it.
        """
        retry_after = int(getattr(exc, "retry_after", 60))
        return error_response(
            request,
            429,
            "rate_limited",
            "too many requests",
            headers={"Retry-After": str(retry_after)},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
        """Negotiated body for every HTTP error, including StaticFiles' 404/405.

        Headers on the exception (Allow, for instance) are kept.
        """
        message = exc.detail if isinstance(exc.detail, str) else "request failed"
        return error_response(request, exc.status_code, f"http_{exc.status_code}", message, headers=exc.headers)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> Response:
        """Catch-all for unexpected server errors.

        The exception is logged with its traceback and never echoed to the
        client. Starlette re-raises it after this response, so the server
        records the failure as well.
        """
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return error_response(request, 500, "internal_error", "internal server error")

    return app
