"""Read-aloud support for generated stories.

Stories are spoken by the browser's speech synthesis, one chunk at a time.
This module prepares the text (drops markdown the synthesiser would read
out literally, splits on sentence boundaries) and models playback as an
explicit state machine driven by a single advance() per finished chunk:

    idle ──start()──▶ speaking ──advance()/fail() on last chunk──▶ finished
                         │
                         └──stop()──▶ stopped
"""

from __future__ import annotations

import re
from enum import Enum

MAX_SPEECH_TEXT = 5000
DEFAULT_CHUNK_CHARS = 200

BROWSER_SPEECH_SETTINGS = {"rate": 1.1, "pitch": 1.4, "volume": 1.0}

_IMAGE = re.compile(r"!\[[^\]]*\]\([^)]*\)")
_LINK = re.compile(r"\[([^\]]+)\]\([^)]*\)")
_EMPHASIS = re.compile(r"[*_`#>]+")
_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")


def clean_for_speech(text: str) -> str:
    """Remove markdown images, link targets and emphasis markers."""
    text = _IMAGE.sub("", text)
    text = _LINK.sub(r"\1", text)
    text = _EMPHASIS.sub("", text)
    return " ".join(text.split())


def split_into_chunks(text: str, max_chars: int = DEFAULT_CHUNK_CHARS) -> list[str]:
    """Split text into chunks of at most max_chars, preferring sentence ends.

    A single sentence longer than max_chars is split on word boundaries; a
    single word longer than max_chars becomes its own chunk.
    """
    chunks: list[str] = []
    current = ""
    for sentence in _SENTENCE_END.split(clean_for_speech(text)):
        for piece in _fit(sentence, max_chars):
            if current and len(current) + 1 + len(piece) <= max_chars:
                current = f"{current} {piece}"
            else:
                if current:
                    chunks.append(current)
                current = piece
    if current:
        chunks.append(current)
    return chunks


def _fit(sentence: str, max_chars: int) -> list[str]:
    if len(sentence) <= max_chars:
        return [sentence] if sentence else []
    pieces: list[str] = []
    current = ""
    for word in sentence.split():
        if current and len(current) + 1 + len(word) > max_chars:
            pieces.append(current)
            current = word
        else:
            current = f"{current} {word}" if current else word
    if current:
        pieces.append(current)
    return pieces


class PlaybackState(str, Enum):
    IDLE = "idle"
    SPEAKING = "speaking"
    FINISHED = "finished"
    STOPPED = "stopped"


class SpeechPlayback:
    """Walks a story's chunks one playback-complete event at a time."""

    def __init__(self, text: str, max_chars: int = DEFAULT_CHUNK_CHARS) -> None:
        self.chunks = split_into_chunks(text, max_chars)
        self.state = PlaybackState.IDLE
        self.index = -1
        self.failed: list[int] = []

    @property
    def current(self) -> str | None:
        if self.state is not PlaybackState.SPEAKING:
            return None
        return self.chunks[self.index]

    def start(self) -> str | None:
        """Begin playback; returns the first chunk to speak, if any."""
        if self.state is not PlaybackState.IDLE:
            raise RuntimeError(f"Cannot start playback in state {self.state.value}")
        self.state = PlaybackState.SPEAKING
        return self.advance()

    def advance(self) -> str | None:
        """The current chunk finished; returns the next one or None when done."""
        if self.state is not PlaybackState.SPEAKING:
            return None
        self.index += 1
        if self.index >= len(self.chunks):
            self.state = PlaybackState.FINISHED
            return None
        return self.chunks[self.index]

    def fail(self) -> str | None:
        """The current chunk errored; it is recorded and playback moves on."""
        if self.state is PlaybackState.SPEAKING and self.index >= 0:
            self.failed.append(self.index)
        return self.advance()

    def stop(self) -> None:
        if self.state in (PlaybackState.IDLE, PlaybackState.SPEAKING):
            self.state = PlaybackState.STOPPED


def browser_fallback_payload(text: str) -> dict:
    """Response telling the client to read the text with browser speech synthesis."""
    limited = text[:MAX_SPEECH_TEXT]
    return {
        "success": True,
        "message": "Use the browser's speech synthesis API",
        "text": limited,
        "chunks": split_into_chunks(limited),
        "speechSettings": dict(BROWSER_SPEECH_SETTINGS),
    }
