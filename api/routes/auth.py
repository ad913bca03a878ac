"""
api/routes/auth.py -- Signup, login and logout under /auth.

Routes:
  GET  /auth/signup          -- static signup form
  POST /auth/signup          -- create user; 200 empty body, 400 exists/invalid, 500 storage
  GET  /auth/login           -- static login form
  POST /auth/login           -- verify; sets auth cookie; 401 bad credentials, 500 storage
  GET|POST /auth/logout      -- delete the session record, clear the cookie
  *    /auth, /auth/{rest}   -- 404 (405 for a known endpoint with another method)

No identity gating applies here: anonymous and logged-in callers reach
every endpoint alike.

Security:
  [H2] POST /auth/login is rate-limited per client IP (Settings.login_rate_limit).
  [C1] Unknown user and wrong password both answer 401 with the same body.
  [M5] Cache-Control: no-store on login and logout responses.
  Error bodies come from the _MESSAGES whitelist, never from exception text,
  so storage paths and OS errors stay in the server log.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Form, HTTPException, Request
from fastapi.responses import HTMLResponse, Response
from slowapi import Limiter
from starlette.concurrency import run_in_threadpool

from api.responses import error_response, success_response
from auth.dependencies import get_identity
from auth.errors import AuthError, StorageError
from auth.models import Identity
from auth.service import AuthService
from auth.tokens import clear_session_cookie, set_session_cookie

_FORM = """
<form method="POST">
    <input type="text" name="user" placeholder="user">
    <input type="password" name="pass" placeholder="pass">
    <input type="submit" value="{label}">
</form>
"""

SIGNUP_FORM = _FORM.format(label="Sign up")
LOGIN_FORM = _FORM.format(label="Login")

_MESSAGES: dict[str, str] = {
    "user_exists": "user already exists",
    "invalid_user": "invalid user name",
    "invalid_password": "password too long",
    "bad_credentials": "invalid user or password",
    "storage_failure": "internal storage error",
}

_ENDPOINT_METHODS: dict[str, str] = {
    "signup": "GET, POST",
    "login": "GET, POST",
    "logout": "GET, POST",
}

_ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def _auth_error(request: Request, exc: AuthError) -> Response:
    return error_response(request, exc.http_status, exc.code, _MESSAGES.get(exc.code, "request failed"))


def create_auth_router(limiter: Limiter, login_rate_limit: str) -> APIRouter:
    """Build the /auth router, registering the login rate limit on limiter."""
    router = APIRouter(prefix="/auth")

    @router.get("/signup", response_class=HTMLResponse)
    async def signup_form() -> HTMLResponse:
        return HTMLResponse(SIGNUP_FORM)

    @router.post("/signup")
    async def signup_submit(
        request: Request,
        user: str = Form(default=""),
        password: str = Form(default="", alias="pass"),
    ) -> Response:
        """Create a user. Success is a bare 200 with no body."""
        service: AuthService = request.app.state.auth_service
        try:
            await run_in_threadpool(service.signup, user, password)
        except AuthError as e:
            return _auth_error(request, e)
        return Response(status_code=200)

    @router.get("/login", response_class=HTMLResponse)
    async def login_form() -> HTMLResponse:
        return HTMLResponse(LOGIN_FORM)

    # [H2] The route must register the slowapi wrapper, not the bare function.
    # SlowAPIMiddleware skips routes that carry a decorator limit, so with the
    # order reversed no check would ever run.
    @router.post("/login")
    @limiter.limit(login_rate_limit)
    async def login_submit(
        request: Request,
        user: str = Form(default=""),
        password: str = Form(default="", alias="pass"),
    ) -> Response:
        """Verify credentials and hand out a session cookie.

        NoSuchUser and BadPassword arrive here already collapsed into
        InvalidCredentials [C1].
        """
        service: AuthService = request.app.state.auth_service
        try:
            token = await run_in_threadpool(service.login, user, password)
        except AuthError as e:
            resp = _auth_error(request, e)
            resp.headers["Cache-Control"] = "no-store"  # [M5]
            return resp

        resp = success_response(request)
        set_session_cookie(resp, token, secure=request.app.state.settings.secure_cookies)
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    @router.api_route("/logout", methods=["GET", "POST"])
    async def logout(request: Request, identity: Identity = Depends(get_identity)) -> Response:
        """Delete the caller's session record and clear the cookie.

        Anonymous callers (or stale cookies) just get the cookie cleared.
        """
        service: AuthService = request.app.state.auth_service
        try:
            await run_in_threadpool(service.logout, identity)
        except StorageError as e:
            return _auth_error(request, e)
        resp = success_response(request)
        clear_session_cookie(resp, secure=request.app.state.settings.secure_cookies)
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    # Registered last: anything the routes above did not fully match.
    @router.api_route("", methods=_ALL_METHODS, include_in_schema=False)
    async def auth_root() -> Response:
        raise HTTPException(status_code=404, detail="not found")

    @router.api_route("/{rest:path}", methods=_ALL_METHODS, include_in_schema=False)
    async def unknown(rest: str) -> Response:
        allow = _ENDPOINT_METHODS.get(rest)
        if allow is not None:
            raise HTTPException(status_code=405, detail="method not allowed", headers={"Allow": allow})
        raise HTTPException(status_code=404, detail="not found")

    return router
