"""
API response models for sitegate.

These Pydantic v2 models define the JSON bodies the server emits when a
client asks for application/json. Plain-text clients get the same content
as short strings (see api/responses.py).
"""

from pydantic import BaseModel, ConfigDict


class SuccessResponse(BaseModel):
    """Body of every JSON success acknowledgement: {"ok": true}."""

    model_config = ConfigDict(frozen=True)

    ok: bool = True


class ErrorDetail(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    message: str


class ErrorResponse(BaseModel):
    """Uniform error envelope so JSON clients parse every failure the same way."""

    model_config = ConfigDict(frozen=True)

    ok: bool = False
    error: ErrorDetail
