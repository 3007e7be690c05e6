from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


class ErrorBody(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class ResponseEnvelope(BaseModel):
    data: Any | None = None
    meta: dict[str, Any] = Field(default_factory=dict)
    error: ErrorBody | None = None


def build_meta(**extra: Any) -> dict[str, Any]:
    meta: dict[str, Any] = {"server_time": datetime.now(timezone.utc).isoformat()}
    meta.update({key: value for key, value in extra.items() if value is not None})
    return meta


def success_response(data: Any, **meta: Any) -> dict[str, Any]:
    return ResponseEnvelope(data=data, meta=build_meta(**meta), error=None).model_dump(mode="json")


def error_response(code: str, message: str, details: dict[str, Any] | None = None, **meta: Any) -> dict[str, Any]:
    return ResponseEnvelope(
        data=None,
        meta=build_meta(**meta),
        error=ErrorBody(code=code, message=message, details=details),
    ).model_dump(mode="json")
