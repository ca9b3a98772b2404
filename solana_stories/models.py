"""Core domain models.

Pydantic is used for validation and serialisation at every data boundary.
Field names follow the stored document layout (camelCase), so message files
written by older deployments load unchanged.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["user", "assistant", "system"]


class ChatTurn(BaseModel):
    """One entry of a prompt sequence sent to the language model."""

    role: Role
    content: str


class NewMessage(BaseModel):
    """A message before the store has assigned its id and timestamp."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str
    sessionId: str
    userId: int | None = None


class Message(NewMessage):
    """A stored entry in a session's append-only message log."""

    id: str
    createdAt: datetime

    def as_turn(self) -> ChatTurn:
        return ChatTurn(role=self.role, content=self.content)


class SessionView(BaseModel):
    """A session as returned to the client: its id and all messages so far."""

    sessionId: str
    messages: list[ChatTurn] = Field(default_factory=list)


class HistoryEntry(BaseModel):
    id: str
    sessionId: str
    messages: list[ChatTurn]


class ChatHistoryPage(BaseModel):
    """One page of a user's past sessions, most recently active first."""

    history: list[HistoryEntry]
    totalCount: int
    totalPages: int
    currentPage: int
    perPage: int


class LibraryStory(BaseModel):
    """A story a user saved to their library."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str
    category: str
    userId: int
    createdAt: datetime


class Feedback(BaseModel):
    """A rating or comment left on a generated story."""

    model_config = ConfigDict(frozen=True)

    id: str
    feedbackCode: int | None = None
    comment: str = ""
    storyPrompt: str = ""
    userId: int
    createdAt: datetime
