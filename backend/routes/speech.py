"""Text-to-speech endpoint (browser speech-synthesis fallback)."""

from fastapi import APIRouter, HTTPException

from solana_stories.speech import browser_fallback_payload

from .models import SpeechBody

router = APIRouter()


@router.post("/text-to-speech-speak")
async def text_to_speech(body: SpeechBody, fallback: bool = False):
    """Return the text split into chunks for the browser to read aloud."""
    if not fallback:
        raise HTTPException(501, "Server-side audio is not available; use fallback=true")
    return browser_fallback_payload(body.text)
