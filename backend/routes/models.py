"""Pydantic request models for API endpoints."""

from pydantic import BaseModel, Field


class ChatBody(BaseModel):
    message: str = Field(min_length=1)
    sessionId: str = Field(min_length=1)


class StoryBody(BaseModel):
    message: str = Field(min_length=1)


class SpeechBody(BaseModel):
    text: str = Field(min_length=1)


class LibraryStoryBody(BaseModel):
    title: str = ""
    description: str = ""


class FeedbackBody(BaseModel):
    feedbackCode: int | None = None
    comment: str = ""
    storyPrompt: str = ""
