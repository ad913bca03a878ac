"""
api/responses.py -- Content-negotiated success and error bodies.

A client that sends an Accept header starting with application/json gets
JSON; everyone else (browsers, curl) gets plain text. The rule is a prefix
match on purpose: "application/json, text/plain" is JSON, "text/html,
application/json" is not.
"""

from __future__ import annotations

from collections.abc import Mapping

from fastapi import Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from api.models import ErrorDetail, ErrorResponse, SuccessResponse

SUCCESS_TEXT = "Success!"


def wants_json(request: Request) -> bool:
    return request.headers.get("accept", "").startswith("application/json")


def success_response(request: Request, status_code: int = 200) -> Response:
    if wants_json(request):
        return JSONResponse(status_code=status_code, content=SuccessResponse().model_dump())
    return PlainTextResponse(SUCCESS_TEXT, status_code=status_code)


def error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    headers: Mapping[str, str] | None = None,
) -> Response:
    if wants_json(request):
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(error=ErrorDetail(code=code, message=message)).model_dump(),
            headers=headers,
        )
    return PlainTextResponse(message, status_code=status_code, headers=headers)
