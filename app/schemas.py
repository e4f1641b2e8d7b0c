"""Pydantic schemas for the relay HTTP API."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, List

from pydantic import BaseModel, Field, field_validator

_RFC3339 = re.compile(
    r"^\d{4}-\d{2}-\d{2}[Tt]\d{2}:\d{2}:\d{2}(\.\d+)?([Zz]|[+-]\d{2}:\d{2})$"
)


class ReadingIn(BaseModel):
    """One reading as submitted by a client; the value is parsed by the relay."""

    timestamp: datetime = Field(..., description="RFC 3339 timestamp of the reading.")
    value: str = Field(..., description="Decimal representation of the reading.")

    @field_validator("timestamp", mode="before")
    @classmethod
    def _require_rfc3339(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return value
        if not isinstance(value, str) or not _RFC3339.match(value):
            raise ValueError("timestamp must be an RFC 3339 string with a UTC offset")
        return value


class ReadingBatchRequest(BaseModel):
    data: List[ReadingIn] = Field(default_factory=list)


class RootResponse(BaseModel):
    ok: bool


class ErrorResponse(BaseModel):
    error: str
