"""Story library and feedback, stored as JSON record files.

Directory layout (shares the base directory with the conversation store):

    {base}/
      library/
        stories.json    ← [LibraryStory, ...]
        feedback.json   ← [Feedback, ...]

Saved stories belong to the user who saved them; another user's story is
reported as not found. Feedback is write-only from the API's point of view.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path

from solana_stories.errors import NotFoundError, ValidationError
from solana_stories.models import Feedback, LibraryStory
from solana_stories.storage import JsonStore

logger = logging.getLogger(__name__)

SAVED_CATEGORY = "Saved Stories"


class StoryLibrary(JsonStore):
    def __init__(self, base_path: Path) -> None:
        super().__init__(base_path)
        self._root = base_path / "library"
        self._root.mkdir(parents=True, exist_ok=True)
        self._stories_file = self._root / "stories.json"
        self._feedback_file = self._root / "feedback.json"

    # ------------------------------------------------------------------
    # Saved stories
    # ------------------------------------------------------------------

    def add_story(self, user_id: int, title: str, description: str) -> LibraryStory:
        """Save a story to the user's library under the "Saved Stories" category.

        Titles are unique per user; saving the same title twice is rejected.
        """
        title = title.strip()
        if not title:
            raise ValidationError("Story title cannot be empty")
        if not description.strip():
            raise ValidationError("Story description cannot be empty")

        stories = self._load_records(self._stories_file, LibraryStory)
        if any(s.userId == user_id and s.title == title for s in stories):
            raise ValidationError(f"A story titled {title!r} is already in the library")

        story = LibraryStory(
            id=uuid.uuid4().hex,
            title=title,
            description=description,
            category=SAVED_CATEGORY,
            userId=user_id,
            createdAt=datetime.now(timezone.utc),
        )
        stories.append(story)
        self._save_records(self._stories_file, stories)
        logger.info("library story saved user=%d id=%s", user_id, story.id)
        return story

    def list_stories(self, user_id: int) -> list[LibraryStory]:
        """The user's saved stories, most recently saved first."""
        stories = self._load_records(self._stories_file, LibraryStory)
        mine = [s for s in stories if s.userId == user_id]
        return sorted(mine, key=lambda s: s.createdAt, reverse=True)

    def get_story(self, user_id: int, story_id: str) -> LibraryStory:
        if not story_id:
            raise ValidationError("Story ID is required")
        for story in self._load_records(self._stories_file, LibraryStory):
            if story.id == story_id and story.userId == user_id:
                return story
        raise NotFoundError("Story not found")

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    def submit_feedback(
        self,
        user_id: int,
        feedback_code: int | None = None,
        comment: str = "",
        story_prompt: str = "",
    ) -> Feedback:
        """Record feedback. At least one of code, comment or prompt must be given."""
        if feedback_code is None and not comment.strip() and not story_prompt.strip():
            raise ValidationError("Feedback code, comment, and story prompt are required")
        if feedback_code is not None and feedback_code < 1:
            raise ValidationError("Feedback code must be a positive number")

        feedback = Feedback(
            id=uuid.uuid4().hex,
            feedbackCode=feedback_code,
            comment=comment,
            storyPrompt=story_prompt,
            userId=user_id,
            createdAt=datetime.now(timezone.utc),
        )
        entries = self._load_records(self._feedback_file, Feedback)
        entries.append(feedback)
        self._save_records(self._feedback_file, entries)
        logger.info("feedback stored user=%d code=%s", user_id, feedback_code)
        return feedback

    def list_feedback(self, user_id: int) -> list[Feedback]:
        return [f for f in self._load_records(self._feedback_file, Feedback) if f.userId == user_id]
