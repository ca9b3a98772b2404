"""Story library and feedback endpoints."""

from fastapi import APIRouter, Depends, Query

from backend.auth import current_user
from backend.dependencies import get_library
from solana_stories.library import StoryLibrary
from solana_stories.models import LibraryStory

from .models import FeedbackBody, LibraryStoryBody

router = APIRouter()


def _story_view(story: LibraryStory) -> dict:
    return story.model_dump(mode="json", exclude={"userId"})


@router.get("/library-stories")
async def library_stories(
    user_id: int = Depends(current_user),
    library: StoryLibrary = Depends(get_library),
):
    """List the caller's saved stories, newest first."""
    return {"stories": [_story_view(s) for s in library.list_stories(user_id)]}


@router.get("/library-story")
async def library_story(
    story_id: str = Query("", alias="id"),
    user_id: int = Depends(current_user),
    library: StoryLibrary = Depends(get_library),
):
    return _story_view(library.get_story(user_id, story_id))


@router.post("/add-story-to-library")
async def add_story_to_library(
    body: LibraryStoryBody,
    user_id: int = Depends(current_user),
    library: StoryLibrary = Depends(get_library),
):
    story = library.add_story(user_id, body.title, body.description)
    return {"message": "Story added to library", "id": story.id}


@router.post("/submit-feedback")
async def submit_feedback(
    body: FeedbackBody,
    user_id: int = Depends(current_user),
    library: StoryLibrary = Depends(get_library),
):
    library.submit_feedback(user_id, body.feedbackCode, body.comment, body.storyPrompt)
    return {"message": "Feedback submitted successfully"}
