from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class PolicyOut(BaseModel):
    settings: dict[str, Any]


class PolicyWrite(BaseModel):
    key: str = Field(min_length=1, max_length=64)
    value: Any = None


class PolicyWritten(BaseModel):
    key: str
    value: Any = None
    cache: dict[str, Any]


class ClearCacheRequest(BaseModel):
    key: str | None = None
