"""Session orchestrator: runs one story request end-to-end.

Request flow (every request is stateless given the persisted history):
  1. Validate the session id, user id and message (nothing written on failure).
  2. Load the session's message history from the store.
  3. Empty history → append the welcome message. The welcome message seeds
     the session for display only; it is not sent to the model on the turn
     that created it.
  4. Append the user's message.
  5. Ask the story client for a reply, using the history loaded in step 2.
  6. Append the assistant reply and return it (or stream it fragment by
     fragment, persisting the joined text once the stream has finished).

There is no rollback: when generation fails after step 4, the user's message
stays in the log and resubmitting is the user's way to retry.
"""

from __future__ import annotations

import logging
import math
from collections.abc import AsyncIterator

from solana_stories.errors import ValidationError
from solana_stories.llm import StoryClient
from solana_stories.models import (
    ChatHistoryPage,
    ChatTurn,
    HistoryEntry,
    Message,
    NewMessage,
    SessionView,
)
from solana_stories.storage import ConversationStore

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = (
    "Hello! I'm SolanaStories, a storytelling bot for children ages 5-10. "
    "I can create fun adventures that teach Solana blockchain concepts through "
    "magical tales! What kind of story would you like for your child today?"
)

# Session id the client uses for its scratch "quick story" page; never listed
SCRATCH_SESSION_ID = "1"


class SessionOrchestrator:
    def __init__(self, store: ConversationStore, client: StoryClient) -> None:
        self._store = store
        self._client = client

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def fetch_or_create_session(self, session_id: str, user_id: int | None) -> SessionView:
        """Return every message of the session, seeding the welcome message first if new."""
        _validate_session(session_id, user_id)
        messages = self._store.list_by_session(session_id)
        if not messages:
            messages = [self._seed_welcome(session_id, user_id)]
        return SessionView(sessionId=session_id, messages=[m.as_turn() for m in messages])

    def chat_history(self, user_id: int, page: int = 1, per_page: int = 10) -> ChatHistoryPage:
        """Sessions with more than one message, most recently active first."""
        if page < 1 or per_page < 1:
            raise ValidationError("page and perPage must be positive")

        sessions = [
            (session_id, messages)
            for session_id, messages in self._store.list_sessions_for_user(user_id).items()
            if session_id != SCRATCH_SESSION_ID and len(messages) > 1
        ]
        sessions.sort(key=lambda s: max(m.createdAt for m in s[1]), reverse=True)

        start = (page - 1) * per_page
        entries = [
            HistoryEntry(
                id=session_id,
                sessionId=session_id,
                messages=[m.as_turn() for m in messages],
            )
            for session_id, messages in sessions[start:start + per_page]
        ]
        return ChatHistoryPage(
            history=entries,
            totalCount=len(sessions),
            totalPages=math.ceil(len(sessions) / per_page),
            currentPage=page,
            perPage=per_page,
        )

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate_reply(self, session_id: str, user_id: int | None, user_message: str) -> str:
        """Run one buffered story turn and return the assistant's reply."""
        history = self._begin_turn(session_id, user_id, user_message)

        reply = await self._client.generate(user_message, history)

        self._store.append(NewMessage(
            role="assistant", content=reply, sessionId=session_id, userId=user_id,
        ))
        logger.info("session=%s reply_len=%d", session_id, len(reply))
        return reply

    def generate_reply_stream(
        self, session_id: str, user_id: int | None, user_message: str
    ) -> AsyncIterator[str]:
        """Run one streamed story turn, returning its reply fragments in order.

        Validation and the user-message write happen before this returns, so
        the caller can still answer with an error status. The joined reply is
        persisted only after the upstream stream has been fully consumed; a
        consumer that stops early leaves no assistant message.
        """
        history = self._begin_turn(session_id, user_id, user_message)
        return self._stream_reply(session_id, user_id, user_message, history)

    async def _stream_reply(
        self, session_id: str, user_id: int | None, user_message: str, history: list[ChatTurn]
    ) -> AsyncIterator[str]:
        pieces: list[str] = []
        async for fragment in self._client.generate_stream(user_message, history):
            pieces.append(fragment)
            yield fragment

        reply = "".join(pieces)
        self._store.append(NewMessage(
            role="assistant", content=reply, sessionId=session_id, userId=user_id,
        ))
        logger.info("session=%s streamed reply_len=%d fragments=%d", session_id, len(reply), len(pieces))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _begin_turn(self, session_id: str, user_id: int | None, user_message: str) -> list[ChatTurn]:
        """Steps 1-4: validate, load history, seed, append the user message.

        Returns the history the model should see for this turn.
        """
        _validate_session(session_id, user_id)
        if not user_message or not user_message.strip():
            raise ValidationError("Message cannot be empty")

        existing = self._store.list_by_session(session_id)
        if not existing:
            self._seed_welcome(session_id, user_id)

        self._store.append(NewMessage(
            role="user", content=user_message, sessionId=session_id, userId=user_id,
        ))
        return [m.as_turn() for m in existing]

    def _seed_welcome(self, session_id: str, user_id: int | None) -> Message:
        logger.debug("seeding welcome message for session=%s", session_id)
        return self._store.append(NewMessage(
            role="assistant", content=WELCOME_MESSAGE, sessionId=session_id, userId=user_id,
        ))


def _validate_session(session_id: str, user_id: int | None) -> None:
    if not session_id or not session_id.strip():
        raise ValidationError("Session ID cannot be empty")
    if user_id is not None and user_id < 1:
        raise ValidationError("User ID must be a positive number")
