"""Notification models — messages addressed to a push's chat channels."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class MessageLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ChannelMessage(BaseModel):
    """A human-readable status line for the channels linked to a repository."""

    model_config = ConfigDict(frozen=True)

    message_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:16])
    text: str
    level: MessageLevel = MessageLevel.INFO
    repo_id: str = ""
    push_id: str = ""
    goal: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
