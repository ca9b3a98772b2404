"""Story generation client: HTTP connection to a language-model backend.

The orchestrator injects a client matching the StoryClient protocol:

    async def generate(self, user_message: str, history: list[ChatTurn]) -> str: ...
    def generate_stream(self, user_message: str, history: list[ChatTurn]) -> AsyncIterator[str]: ...

Both build the same prompt sequence:

    [system (system prompt + knowledge context), *history, user message]

Two implementations are provided:

    HttpStoryClient: real HTTP client, supports OpenAI-compatible chat
                      completions and KoboldCpp backends. Selected by
                      provider_format.
    EchoStoryClient: answers with the user's own message. Useful for
                      smoke-testing the session wiring without a model.

Tests use stub clients (defined in the test helpers) instead.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Literal, Protocol

import httpx

from solana_stories.errors import GenerationError
from solana_stories.knowledge import KnowledgeBase
from solana_stories.models import ChatTurn

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "I'm sorry, I couldn't create a story right now. Please try again."


# ---------------------------------------------------------------------------
# Protocol: every story client must match these signatures
# ---------------------------------------------------------------------------

class StoryClient(Protocol):
    async def generate(self, user_message: str, history: list[ChatTurn]) -> str: ...

    def generate_stream(
        self, user_message: str, history: list[ChatTurn]
    ) -> AsyncIterator[str]: ...


# ---------------------------------------------------------------------------
# Fragment spacing
# ---------------------------------------------------------------------------

class FragmentSpacer:
    """Joins streamed fragments so the concatenation reads as normal prose.

    - Leading spaces are dropped when the previous fragment ended in whitespace
      (and at the very start of the stream).
    - One space is inserted before a fragment that starts with a non-space
      character when the previous fragment did not end in whitespace.
    - Empty pieces are never returned as fragments.
    """

    def __init__(self) -> None:
        self._ends_ws = True

    def feed(self, fragment: str) -> str:
        """Return the normalised fragment, or "" if nothing should be emitted."""
        if not fragment:
            return ""
        stripped = fragment.lstrip(" \t")
        if not stripped:
            piece = "" if self._ends_ws else " "
        elif self._ends_ws or stripped[0].isspace():
            piece = stripped
        else:
            piece = " " + stripped
        if piece:
            self._ends_ws = piece[-1].isspace()
        return piece


async def space_fragments(fragments: AsyncIterator[str]) -> AsyncIterator[str]:
    spacer = FragmentSpacer()
    async for fragment in fragments:
        piece = spacer.feed(fragment)
        if piece:
            yield piece


# ---------------------------------------------------------------------------
# HttpStoryClient: connects to a real backend
# ---------------------------------------------------------------------------

ProviderFormat = Literal["openai", "koboldcpp"]


class HttpStoryClient:
    """Async HTTP client for story generation.

    Supported formats:
      "openai"    : POST /v1/chat/completions  {"model", "messages", ...}
                     Response: {"choices": [{"message": {"content": "..."}}]}
                     Stream: SSE "data: {...delta...}" lines, "data: [DONE]"
      "koboldcpp" : POST /api/v1/generate  {"prompt": ...}
                     Response: {"results": [{"text": "..."}]}
                     Stream: POST /api/extra/generate/stream, SSE "data: {"token": ...}"

    Args:
        knowledge:       Knowledge base providing the system prompt and context.
        provider_url:    Base URL of the backend, e.g. "https://api.openai.com".
        api_key:         Bearer token, or empty string if not required.
        provider_format: Wire format to use. Defaults to "openai".
        model:           Model identifier, used only by the openai format.
        temperature:     Sampling temperature sent with every request.
        max_tokens:      Output length cap sent with every request.
        timeout:         HTTP timeout in seconds. Defaults to 120.
        transport:       Optional httpx transport (tests inject a MockTransport).
    """

    def __init__(
        self,
        knowledge: KnowledgeBase,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "openai",
        model: str = "gpt-4o-mini",
        temperature: float = 0.7,
        max_tokens: int = 1500,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._knowledge = knowledge
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._timeout = timeout
        self._transport = transport

    def build_prompt(self, user_message: str, history: list[ChatTurn]) -> list[ChatTurn]:
        """Return the ordered prompt sequence sent to the model."""
        self._knowledge.initialize()
        system = (
            f"{self._knowledge.get_system_prompt()}\n\n"
            f"{self._knowledge.get_knowledge_context()}"
        )
        return [
            ChatTurn(role="system", content=system),
            *history,
            ChatTurn(role="user", content=user_message),
        ]

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(self, turns: list[ChatTurn], stream: bool) -> tuple[str, dict]:
        """Return (url, body) for the configured format."""
        if self._format == "koboldcpp":
            path = "/api/extra/generate/stream" if stream else "/api/v1/generate"
            body: dict = {
                "prompt": _flatten(turns),
                "max_length": self._max_tokens,
                "temperature": self._temperature,
            }
            return f"{self._base_url}{path}", body

        # openai (default)
        body = {
            "messages": [t.model_dump() for t in turns],
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
        }
        if self._model:
            body["model"] = self._model
        if stream:
            body["stream"] = True
        return f"{self._base_url}/v1/chat/completions", body

    def _parse_response(self, data: object) -> str:
        """Extract the completion text from the response body."""
        if self._format == "koboldcpp":
            first = _first(data, "results")
            if first is None or not isinstance(first.get("text"), str):
                raise GenerationError("Unexpected response format from KoboldCpp backend")
            return first["text"]

        first = _first(data, "choices")
        message = first.get("message") if first is not None else None
        if not isinstance(message, dict):
            raise GenerationError("Unexpected response format from OpenAI-compatible backend")
        content = message.get("content")
        return content if isinstance(content, str) else ""

    def _parse_event(self, payload: str) -> str:
        """Extract the text delta from one SSE data payload."""
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise GenerationError(f"Malformed stream event: {payload[:80]!r}") from e
        if not isinstance(data, dict):
            raise GenerationError(f"Malformed stream event: {payload[:80]!r}")
        if self._format == "koboldcpp":
            token = data.get("token")
            return token if isinstance(token, str) else ""
        if not data.get("choices"):
            return ""
        first = _first(data, "choices")
        delta = (first.get("delta") or {}) if first is not None else None
        if not isinstance(delta, dict):
            raise GenerationError(f"Malformed stream event: {payload[:80]!r}")
        content = delta.get("content")
        return content if isinstance(content, str) else ""

    async def generate(self, user_message: str, history: list[ChatTurn]) -> str:
        turns = self.build_prompt(user_message, history)
        url, body = self._build_request(turns, stream=False)
        logger.debug("story call url=%s turns=%d prompt_len=%d", url, len(turns), _prompt_len(turns))

        try:
            async with self._client() as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise _transport_error(e, self._base_url, self._timeout) from e

        try:
            data = resp.json()
        except ValueError as e:
            raise GenerationError("Story backend returned a non-JSON body") from e
        text = self._parse_response(data)
        logger.debug("story response len=%d", len(text))
        return text or FALLBACK_REPLY

    async def generate_stream(
        self, user_message: str, history: list[ChatTurn]
    ) -> AsyncIterator[str]:
        turns = self.build_prompt(user_message, history)
        async for piece in space_fragments(self._raw_stream(turns)):
            yield piece

    async def _raw_stream(self, turns: list[ChatTurn]) -> AsyncIterator[str]:
        url, body = self._build_request(turns, stream=True)
        logger.debug("story stream url=%s turns=%d prompt_len=%d", url, len(turns), _prompt_len(turns))

        try:
            async with self._client() as client:
                async with client.stream("POST", url, json=body, headers=self._headers()) as resp:
                    resp.raise_for_status()
                    async for line in resp.aiter_lines():
                        if not line.startswith("data:"):
                            continue
                        payload = line[len("data:"):].strip()
                        if payload == "[DONE]":
                            break
                        if payload:
                            yield self._parse_event(payload)
        except httpx.HTTPError as e:
            raise _transport_error(e, self._base_url, self._timeout) from e


# ---------------------------------------------------------------------------
# EchoStoryClient: no network; useful for wiring smoke tests
# ---------------------------------------------------------------------------

class EchoStoryClient:
    """Replies with the user's message. No network calls."""

    async def generate(self, user_message: str, history: list[ChatTurn]) -> str:
        logger.debug("EchoStoryClient history=%d", len(history))
        return user_message

    async def generate_stream(
        self, user_message: str, history: list[ChatTurn]
    ) -> AsyncIterator[str]:
        async for piece in space_fragments(_words(user_message)):
            yield piece


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _flatten(turns: list[ChatTurn]) -> str:
    """Render a chat sequence as one text-completion prompt."""
    lines = [f"{t.role.capitalize()}: {t.content}" for t in turns]
    lines.append("Assistant:")
    return "\n\n".join(lines)


async def _words(text: str) -> AsyncIterator[str]:
    for word in text.split():
        yield word


def _prompt_len(turns: list[ChatTurn]) -> int:
    return sum(len(t.content) for t in turns)


def _first(data: object, key: str) -> dict | None:
    """Return data[key][0] when the body has that shape, else None."""
    if not isinstance(data, dict):
        return None
    items = data.get(key)
    if not isinstance(items, list) or not items or not isinstance(items[0], dict):
        return None
    return items[0]


def _transport_error(e: httpx.HTTPError, base_url: str, timeout: float) -> GenerationError:
    if isinstance(e, httpx.ConnectError):
        return GenerationError(f"Cannot connect to story backend at {base_url}")
    if isinstance(e, httpx.HTTPStatusError):
        return GenerationError(f"Story backend returned HTTP {e.response.status_code}")
    if isinstance(e, httpx.TimeoutException):
        return GenerationError(f"Story backend timed out after {timeout}s")
    return GenerationError(f"Story backend request failed: {e}")
