"""Knowledge base: the static reference material prepended to every prompt.

Asset directory layout:

    {knowledge_dir}/
      system-prompt.txt               ← storyteller instructions
      stories.json                    ← [{"Story Name,Story": "<name>,<story>"}]
      reddit.json                     ← [{"Storyline": ..., "body": ..., ...}]
      solana-blockchain-basics.json   ← [{"data": "<text>"}]
      solana-nfts.json                ← [{"data": "<text>"}]
      solana-news.json                ← [{"data": "<text>"}]

The app constructs one KnowledgeBase and calls initialize() at startup;
the orchestrator calls it again before each generation, which is a no-op
once loaded. A failed load leaves the instance empty so the next call
retries from scratch.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from solana_stories.errors import InitializationError, NotInitializedError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT_FILE = "system-prompt.txt"

# (file name, context heading) for the plain-text fact collections
FACT_COLLECTIONS: tuple[tuple[str, str], ...] = (
    ("solana-blockchain-basics.json", "Solana Blockchain Basics"),
    ("solana-nfts.json", "Solana NFTs"),
    ("solana-news.json", "Solana News"),
)
STORIES_FILE = "stories.json"
POSTS_FILE = "reddit.json"
STORY_KEY = "Story Name,Story"


@dataclass(frozen=True)
class ExcerptLimits:
    """Bounds applied when composing the knowledge context."""

    max_items: int = 5
    fact_excerpt: int = 1000
    story_excerpt: int = 300
    post_excerpt: int = 200
    title_excerpt: int = 80


@dataclass(frozen=True)
class _Assets:
    system_prompt: str
    facts: dict[str, list[str]]  # heading → texts, in FACT_COLLECTIONS order
    stories: list[tuple[str, str]]
    posts: list[tuple[str, str]]


class KnowledgeBase:
    def __init__(self, asset_dir: Path, limits: ExcerptLimits | None = None) -> None:
        self._dir = asset_dir
        self._limits = limits or ExcerptLimits()
        self._assets: _Assets | None = None
        self._context: str | None = None

    @property
    def is_ready(self) -> bool:
        return self._assets is not None

    def initialize(self) -> None:
        """Load every asset. Idempotent once it has succeeded.

        Raises InitializationError if any asset is missing or malformed.
        """
        if self._assets is not None:
            return

        system_prompt = self._read_text(SYSTEM_PROMPT_FILE)
        facts = {
            heading: [self._require_str(item, "data", name) for item in self._read_list(name)]
            for name, heading in FACT_COLLECTIONS
        }
        stories = [
            _split_story(self._require_str(item, STORY_KEY, STORIES_FILE))
            for item in self._read_list(STORIES_FILE)
        ]
        posts = [
            (str(item.get("Storyline") or ""), str(item.get("body") or ""))
            for item in self._read_list(POSTS_FILE)
        ]

        assets = _Assets(system_prompt=system_prompt, facts=facts, stories=stories, posts=posts)
        self._context = _compose(assets, self._limits)
        self._assets = assets
        logger.info(
            "knowledge base loaded from %s: %d stories, %d posts, context_len=%d",
            self._dir, len(stories), len(posts), len(self._context),
        )

    def get_system_prompt(self) -> str:
        if self._assets is None:
            raise NotInitializedError("System prompt not initialized")
        return self._assets.system_prompt

    def get_knowledge_context(self) -> str:
        if self._context is None:
            raise NotInitializedError("Knowledge context not initialized")
        return self._context

    # ------------------------------------------------------------------
    # Asset readers
    # ------------------------------------------------------------------

    def _read_text(self, name: str) -> str:
        path = self._dir / name
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise InitializationError(f"Cannot read knowledge asset {path}: {e}") from e

    def _read_list(self, name: str) -> list[dict[str, Any]]:
        try:
            data = json.loads(self._read_text(name))
        except json.JSONDecodeError as e:
            raise InitializationError(f"Knowledge asset {name} is not valid JSON: {e}") from e
        if not isinstance(data, list) or not all(isinstance(i, dict) for i in data):
            raise InitializationError(f"Knowledge asset {name} must be a JSON array of objects")
        return data

    @staticmethod
    def _require_str(item: dict[str, Any], key: str, name: str) -> str:
        value = item.get(key)
        if not isinstance(value, str):
            raise InitializationError(f"Knowledge asset {name}: entry without a {key!r} string")
        return value


def _split_story(raw: str) -> tuple[str, str]:
    """'The Brave Validator,Once upon a time, ...' → (name, story)."""
    name, _, story = raw.partition(",")
    return name.strip(), story.strip()


def _compose(assets: _Assets, limits: ExcerptLimits) -> str:
    parts = ["Knowledge Base:\n"]

    for heading, texts in assets.facts.items():
        parts.append(f"## {heading}\n")
        for text in texts[: limits.max_items]:
            parts.append(text[: limits.fact_excerpt] + "...\n\n")

    parts.append("## Children's Story Patterns\n")
    for name, story in assets.stories[: limits.max_items]:
        parts.append(f"{name[: limits.title_excerpt]}: {story[: limits.story_excerpt]}...\n\n")

    parts.append("## Community Discussions\n")
    usable = [(line, body) for line, body in assets.posts if line and body]
    for storyline, body in usable[: limits.max_items]:
        parts.append(f"{storyline[: limits.title_excerpt]}: {body[: limits.post_excerpt]}...\n\n")

    return "".join(parts)
