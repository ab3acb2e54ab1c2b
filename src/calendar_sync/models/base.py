"""Shared base model for Cosmos DB documents."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, Field
from pydantic_core import to_jsonable_python


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def to_json_timestamp(value: datetime) -> str:
    """Serialize a datetime exactly as documents store it, for range queries."""
    return to_jsonable_python(value)


class DocumentBase(BaseModel):
    """Fields common to every top-level document."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    deleted_at: datetime | None = None
