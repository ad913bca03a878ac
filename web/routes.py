"""
web/routes.py -- Static content for every virtual host, private tree first.

Routes:
  GET|HEAD /{path}                       -- serve a file for the request's Host
  POST|PUT|PATCH|DELETE|OPTIONS /{path}  -- acknowledge with a success body

Resolution for GET/HEAD:
  1. The host segment is the Host header verbatim (port included), the same
     name the certificate gate looks for under the public root.
  2. A logged-in user whose private tree private_dir/<user>/<host> can serve
     the path gets it from there.
  3. Everyone else, and any path the private tree cannot serve, is served
     from public_dir/<host>.

Anonymous callers never reach step 2, whatever path they ask for.

File transfer is Starlette's StaticFiles: ETag/Last-Modified, 304, Range,
index.html for directories, and lookups that refuse to leave the directory.
This router must be included after the /auth router; its catch-all path
would otherwise shadow /auth/*.
"""

import os
import stat
from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool
from starlette.staticfiles import StaticFiles

from api.responses import success_response
from auth.dependencies import get_identity
from auth.models import Identity
from core.config import Settings
from core.hosts import is_valid_host_segment

router = APIRouter()

_ACK_METHODS = ["POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def _relative_path(path: str) -> str:
    """URL path (without leading slash) -> normalized relative file path."""
    return os.path.normpath(os.path.join(*path.split("/")))


def _static(directory: Path) -> StaticFiles:
    return StaticFiles(directory=directory, html=True, check_dir=False)


def _servable(files: StaticFiles, rel: str) -> bool:
    """True if files would answer rel with content: a regular file, or a
    directory holding an index.html."""
    _, st = files.lookup_path(rel)
    if st is None:
        return False
    if stat.S_ISREG(st.st_mode):
        return True
    if stat.S_ISDIR(st.st_mode):
        _, index = files.lookup_path(os.path.join(rel, "index.html"))
        return index is not None and stat.S_ISREG(index.st_mode)
    return False


@router.api_route("/{path:path}", methods=["GET", "HEAD"], include_in_schema=False)
async def serve_content(request: Request, path: str, identity: Identity = Depends(get_identity)) -> Response:
    settings: Settings = request.app.state.settings
    host = request.headers.get("host", "")
    if not is_valid_host_segment(host):
        raise HTTPException(status_code=400, detail="invalid host header")

    rel = _relative_path(path)
    if not identity.is_anonymous:
        private = _static(settings.private_dir / identity.user / host)
        if await run_in_threadpool(_servable, private, rel):
            return await private.get_response(rel, request.scope)

    public = _static(settings.public_dir / host)
    return await public.get_response(rel, request.scope)


@router.api_route("/{path:path}", methods=_ACK_METHODS, include_in_schema=False)
async def acknowledge(request: Request, path: str) -> Response:
    """Non-GET requests outside /auth are accepted and answered with a success body."""
    return success_response(request)
