"""
asgi.py -- Application assembly for sitegate.

This is the ONLY file that imports from both api/ and web/. It joins the two
independent layers into a single ASGI app without coupling them to each other.
api/main.py knows nothing about web/; web/routes.py knows nothing about api/main.py.

Run with:  sitegate <public> <private> <certs> <logs> <auth> <email>
"""

from fastapi import FastAPI

from api.main import create_api
from core.config import Settings
from web.routes import router as web_router


def create_app(settings: Settings) -> FastAPI:
    """Return the complete application for settings.

    The content router goes last: its catch-all path must not shadow /auth.
    """
    app = create_api(settings)
    app.include_router(web_router, tags=["Content"])
    return app
