"""Chat session, story generation (buffered + SSE) and history endpoints."""

import json
import logging
from collections.abc import AsyncIterator
from contextlib import aclosing

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from backend.auth import current_user
from backend.dependencies import get_orchestrator, get_story_client, require_knowledge
from solana_stories.errors import StoriesError
from solana_stories.llm import StoryClient
from solana_stories.orchestrator import SessionOrchestrator

from .models import ChatBody, StoryBody

logger = logging.getLogger(__name__)

router = APIRouter()

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


@router.get("/chat-session")
async def chat_session(
    session_id: str = Query("", alias="sessionId"),
    user_id: int = Depends(current_user),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """Get a session's messages, creating it with a welcome message if new."""
    if not session_id:
        raise HTTPException(400, "Session ID is required")
    return orchestrator.fetch_or_create_session(session_id, user_id)


@router.post("/chat-generate", dependencies=[Depends(require_knowledge)])
async def chat_generate(
    body: ChatBody,
    user_id: int = Depends(current_user),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """Send a message to a session and wait for the full story reply."""
    reply = await orchestrator.generate_reply(body.sessionId, user_id, body.message)
    return {"message": reply}


@router.post("/chat-generate/stream", dependencies=[Depends(require_knowledge)])
async def chat_generate_stream(
    request: Request,
    body: ChatBody,
    user_id: int = Depends(current_user),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """Send a message to a session and stream the reply as server-sent events."""
    fragments = orchestrator.generate_reply_stream(body.sessionId, user_id, body.message)
    return StreamingResponse(
        _sse(request, fragments), media_type="text/event-stream", headers=SSE_HEADERS,
    )


@router.post("/story-generate", dependencies=[Depends(require_knowledge)])
async def story_generate(
    request: Request,
    body: StoryBody,
    user_id: int = Depends(current_user),
    client: StoryClient = Depends(get_story_client),
):
    """Stream a one-off story with no session history. Nothing is stored."""
    logger.debug("one-off story for user=%d", user_id)
    fragments = client.generate_stream(body.message, [])
    return StreamingResponse(
        _sse(request, fragments), media_type="text/event-stream", headers=SSE_HEADERS,
    )


@router.get("/chat-history")
async def chat_history(
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100, alias="perPage"),
    user_id: int = Depends(current_user),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """List the caller's past sessions, most recently active first."""
    return orchestrator.chat_history(user_id, page, per_page)


async def _sse(request: Request, fragments: AsyncIterator[str]) -> AsyncIterator[str]:
    """Frame fragments as SSE events, ending with [DONE] or [ERROR].

    Stops forwarding as soon as the client has gone away; closing the
    fragment iterator closes the upstream model request.
    """
    async with aclosing(fragments):
        try:
            async for fragment in fragments:
                if await request.is_disconnected():
                    logger.info("client disconnected from %s mid-stream", request.url.path)
                    return
                yield f"data: {json.dumps(fragment)}\n\n"
        except StoriesError:
            logger.exception("story stream failed")
            yield "data: [ERROR]\n\n"
            return
        except Exception:
            # the 200 status is already sent; all that is left is to frame the failure
            logger.exception("unexpected error in story stream for %s", request.url.path)
            yield "data: [ERROR]\n\n"
            return
    yield "data: [DONE]\n\n"
