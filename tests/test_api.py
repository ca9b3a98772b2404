"""HTTP surface tests: routes, auth, error mapping and SSE framing.

The app is built with create_app() around a StubStoryClient and driven
through httpx's ASGI transport, so no server or model is needed.
"""

import json

import httpx
import jwt
import pytest

from backend.app import create_app
from backend.auth import decode_user_id
from conftest import TEST_DATA_DIR, StubStoryClient
from solana_stories.config import Settings
from solana_stories.errors import GenerationError
from solana_stories.knowledge import KnowledgeBase
from solana_stories.llm import HttpStoryClient
from solana_stories.orchestrator import WELCOME_MESSAGE


def make_token(payload: dict) -> str:
    """A signed JWT; the backend reads the payload without checking the key."""
    return jwt.encode(payload, "some-other-service-secret", algorithm="HS256")


AUTH = {"Authorization": f"Bearer {make_token({'id': 7, 'email': 'kid@example.com'})}"}


def _events(body: str) -> list[str]:
    return [chunk[len("data: "):] for chunk in body.split("\n\n") if chunk.startswith("data: ")]


@pytest.fixture
def story_client() -> StubStoryClient:
    return StubStoryClient()


@pytest.fixture
def app(knowledge_dir, story_client):
    settings = Settings(data_dir=TEST_DATA_DIR, knowledge_dir=knowledge_dir)
    return create_app(settings=settings, story_client=story_client)


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# ── Auth ─────────────────────────────────────────────────


def test_decode_user_id():
    assert decode_user_id(make_token({"id": 3})) == 3


@pytest.mark.parametrize("token", [
    "not-a-jwt",
    "a.b.c",
    make_token({"email": "no id"}),
    make_token({"id": 0}),
    make_token({"id": "7"}),
    make_token({"id": True}),
])
def test_decode_user_id_rejects(token):
    with pytest.raises(ValueError):
        decode_user_id(token)


async def test_missing_token_is_401(client):
    resp = await client.get("/api/chat-session", params={"sessionId": "s1"})
    assert resp.status_code == 401
    assert resp.json() == {"message": "Unauthorized: Missing or invalid token"}


async def test_invalid_token_is_403(client):
    resp = await client.get(
        "/api/chat-session", params={"sessionId": "s1"},
        headers={"Authorization": "Bearer garbage"},
    )
    assert resp.status_code == 403


# ── Health ───────────────────────────────────────────────


async def test_health(client):
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


async def test_only_api_routes_are_served(client):
    resp = await client.get("/library")
    assert resp.status_code == 404
    assert resp.json() == {"message": "Not Found"}


# ── Chat session ─────────────────────────────────────────


async def test_chat_session_creates_welcome_once(client):
    first = await client.get("/api/chat-session", params={"sessionId": "s1"}, headers=AUTH)
    second = await client.get("/api/chat-session", params={"sessionId": "s1"}, headers=AUTH)
    expected = {"sessionId": "s1", "messages": [{"role": "assistant", "content": WELCOME_MESSAGE}]}
    assert first.json() == expected
    assert second.json() == expected


async def test_chat_session_requires_session_id(client):
    resp = await client.get("/api/chat-session", headers=AUTH)
    assert resp.status_code == 400
    assert resp.json() == {"message": "Session ID is required"}


# ── Buffered generation ──────────────────────────────────


async def test_chat_generate(client, story_client):
    resp = await client.post(
        "/api/chat-generate", json={"message": "Tell me about Solana", "sessionId": "s1"}, headers=AUTH,
    )
    assert resp.status_code == 200
    assert resp.json() == {"message": "Once upon a time..."}

    session = await client.get("/api/chat-session", params={"sessionId": "s1"}, headers=AUTH)
    assert [m["role"] for m in session.json()["messages"]] == ["assistant", "user", "assistant"]


async def test_chat_generate_validation_error_is_400(client, story_client):
    resp = await client.post("/api/chat-generate", json={"message": "", "sessionId": "s1"}, headers=AUTH)
    assert resp.status_code == 400
    assert "message" in resp.json()
    assert story_client.calls == []


async def test_chat_generate_blank_message_is_400(client):
    resp = await client.post("/api/chat-generate", json={"message": "   ", "sessionId": "s1"}, headers=AUTH)
    assert resp.status_code == 400
    assert resp.json() == {"message": "Message cannot be empty"}


async def test_chat_generate_failure_is_generic_500(client, story_client):
    story_client.error = GenerationError("upstream said no: secret details")
    resp = await client.post("/api/chat-generate", json={"message": "hi", "sessionId": "s1"}, headers=AUTH)
    assert resp.status_code == 500
    assert resp.json() == {"message": "Failed to generate story"}

    session = await client.get("/api/chat-session", params={"sessionId": "s1"}, headers=AUTH)
    assert [m["content"] for m in session.json()["messages"]] == [WELCOME_MESSAGE, "hi"]


async def test_broken_knowledge_is_503(knowledge_dir, story_client):
    (knowledge_dir / "stories.json").write_text("[oops")
    app = create_app(
        settings=Settings(data_dir=TEST_DATA_DIR, knowledge_dir=knowledge_dir),
        story_client=story_client,
    )
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        resp = await c.post("/api/chat-generate", json={"message": "hi", "sessionId": "s1"}, headers=AUTH)
        health = await c.get("/api/health")
    assert resp.status_code == 503
    assert story_client.calls == []
    assert health.json()["knowledge_base"] is False


# ── Streaming ────────────────────────────────────────────


async def test_chat_generate_stream(client):
    resp = await client.post(
        "/api/chat-generate/stream", json={"message": "Tell me about Solana", "sessionId": "s1"}, headers=AUTH,
    )
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    events = _events(resp.text)
    assert events[-1] == "[DONE]"
    assert "".join(json.loads(e) for e in events[:-1]) == "Once upon a time"

    session = await client.get("/api/chat-session", params={"sessionId": "s1"}, headers=AUTH)
    assert session.json()["messages"][-1] == {"role": "assistant", "content": "Once upon a time"}


async def test_chat_generate_stream_error_event(client, story_client):
    story_client.error = GenerationError("boom")
    resp = await client.post("/api/chat-generate/stream", json={"message": "hi", "sessionId": "s1"}, headers=AUTH)
    assert resp.status_code == 200
    assert _events(resp.text) == ["[ERROR]"]


async def test_chat_generate_stream_validation_before_streaming(client):
    resp = await client.post("/api/chat-generate/stream", json={"message": " ", "sessionId": "s1"}, headers=AUTH)
    assert resp.status_code == 400


async def test_fragment_with_newline_stays_one_event(client, story_client):
    story_client.fragments = ["The end.", "\n\nNext day"]
    resp = await client.post("/api/chat-generate/stream", json={"message": "hi", "sessionId": "s1"}, headers=AUTH)
    events = _events(resp.text)
    assert [json.loads(e) for e in events[:-1]] == ["The end.", "\n\nNext day"]


async def test_story_generate_is_stateless(client, story_client):
    resp = await client.post("/api/story-generate", json={"message": "A dragon"}, headers=AUTH)
    events = _events(resp.text)
    assert events[-1] == "[DONE]"
    assert story_client.calls == [("A dragon", [])]
    history = await client.get("/api/chat-history", headers=AUTH)
    assert history.json()["totalCount"] == 0


async def test_unexpected_stream_failure_still_framed(client, story_client):
    story_client.error = RuntimeError("bug in a client")
    resp = await client.post("/api/story-generate", json={"message": "A dragon"}, headers=AUTH)
    assert resp.status_code == 200
    assert _events(resp.text) == ["[ERROR]"]


async def test_malformed_model_body_is_generic_500(knowledge_dir):
    """A backend answering with a JSON array maps to the usual generation failure."""
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=[]))
    model = HttpStoryClient(KnowledgeBase(knowledge_dir), provider_url="http://llm", transport=transport)
    app = create_app(
        settings=Settings(data_dir=TEST_DATA_DIR, knowledge_dir=knowledge_dir), story_client=model,
    )
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        resp = await c.post("/api/chat-generate", json={"message": "hi", "sessionId": "s1"}, headers=AUTH)
    assert resp.status_code == 500
    assert resp.json() == {"message": "Failed to generate story"}


# ── History ──────────────────────────────────────────────


async def test_chat_history(client):
    for session in ("a", "b"):
        await client.post("/api/chat-generate", json={"message": f"hi {session}", "sessionId": session}, headers=AUTH)
    resp = await client.get("/api/chat-history", params={"page": 1, "perPage": 1}, headers=AUTH)
    body = resp.json()
    assert body["totalCount"] == 2
    assert body["totalPages"] == 2
    assert body["history"][0]["sessionId"] == "b"
    assert body["history"][0]["messages"][1] == {"role": "user", "content": "hi b"}


async def test_chat_history_other_user_sees_nothing(client):
    await client.post("/api/chat-generate", json={"message": "hi", "sessionId": "a"}, headers=AUTH)
    other = {"Authorization": f"Bearer {make_token({'id': 8})}"}
    resp = await client.get("/api/chat-history", headers=other)
    assert resp.json()["history"] == []


# ── Library and feedback ─────────────────────────────────


async def test_add_and_read_library_story(client):
    added = await client.post(
        "/api/add-story-to-library",
        json={"title": "The Brave Validator", "description": "Vera checks every block."},
        headers=AUTH,
    )
    assert added.status_code == 200
    assert added.json()["message"] == "Story added to library"
    story_id = added.json()["id"]

    listing = await client.get("/api/library-stories", headers=AUTH)
    [story] = listing.json()["stories"]
    assert story["id"] == story_id
    assert story["title"] == "The Brave Validator"
    assert story["category"] == "Saved Stories"
    assert "userId" not in story

    single = await client.get("/api/library-story", params={"id": story_id}, headers=AUTH)
    assert single.json() == story


async def test_library_story_requires_id(client):
    resp = await client.get("/api/library-story", headers=AUTH)
    assert resp.status_code == 400
    assert resp.json() == {"message": "Story ID is required"}


async def test_library_story_of_other_user_is_404(client):
    added = await client.post(
        "/api/add-story-to-library", json={"title": "Mine", "description": "A tale."}, headers=AUTH,
    )
    other = {"Authorization": f"Bearer {make_token({'id': 8})}"}
    resp = await client.get("/api/library-story", params={"id": added.json()["id"]}, headers=other)
    assert resp.status_code == 404
    assert resp.json() == {"message": "Story not found"}


async def test_add_story_without_title_is_400(client):
    resp = await client.post("/api/add-story-to-library", json={"description": "A tale."}, headers=AUTH)
    assert resp.status_code == 400


async def test_library_requires_token(client):
    resp = await client.get("/api/library-stories")
    assert resp.status_code == 401


async def test_submit_feedback(client):
    resp = await client.post(
        "/api/submit-feedback", json={"feedbackCode": 5, "storyPrompt": "A dragon"}, headers=AUTH,
    )
    assert resp.status_code == 200
    assert resp.json() == {"message": "Feedback submitted successfully"}


async def test_empty_feedback_is_400(client):
    resp = await client.post("/api/submit-feedback", json={}, headers=AUTH)
    assert resp.status_code == 400
    assert resp.json() == {"message": "Feedback code, comment, and story prompt are required"}


# ── Speech ───────────────────────────────────────────────


async def test_text_to_speech_fallback(client):
    resp = await client.post(
        "/api/text-to-speech-speak", params={"fallback": "true"}, json={"text": "Hello. Bye."},
    )
    assert resp.status_code == 200
    assert resp.json()["chunks"] == ["Hello. Bye."]


async def test_text_to_speech_without_fallback_is_501(client):
    resp = await client.post("/api/text-to-speech-speak", json={"text": "Hello."})
    assert resp.status_code == 501


async def test_text_to_speech_empty_text_is_400(client):
    resp = await client.post("/api/text-to-speech-speak", params={"fallback": "true"}, json={"text": ""})
    assert resp.status_code == 400
