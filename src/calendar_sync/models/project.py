"""Project document model - members and the per-channel content collections."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from calendar_sync.models.base import DocumentBase


class Channel(StrEnum):
    """Independent content collections within a project."""

    FBIG = "fbig"
    INSTAGRAM = "instagram"
    TIKTOK = "tiktok"

    @classmethod
    def from_instance(cls, instance: str) -> Channel:
        """Map a UI instance name onto its stored channel key."""
        if instance == "facebook":
            return cls.FBIG
        return cls(instance)


class Member(BaseModel):
    """A project member as supplied by the identity provider."""

    uid: str
    email: str = ""
    display_name: str = ""
    photo_url: str = ""

    @property
    def name(self) -> str:
        return self.display_name or self.email or "Someone"


def _empty_channels() -> dict[str, dict[str, Any]]:
    return {channel.value: {} for channel in Channel}


class Project(DocumentBase):
    """The unit of collaboration, partitioned by its own id."""

    name: str
    owner: Member
    members: list[Member] = Field(default_factory=list)
    member_ids: list[str] = Field(default_factory=list)
    channels: dict[str, dict[str, Any]] = Field(default_factory=_empty_channels)
