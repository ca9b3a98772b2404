"""FastAPI API endpoints under /api.

Endpoint groups: health, chat (sessions, buffered and streamed story
generation, history), library (saved stories, feedback), speech (browser
read-aloud fallback). Chat and library endpoints require an
`Authorization: Bearer <token>` header.
"""

from fastapi import APIRouter

from .chat import router as chat_router
from .health import router as health_router
from .library import router as library_router
from .speech import router as speech_router

router = APIRouter()
router.include_router(health_router)
router.include_router(chat_router)
router.include_router(library_router)
router.include_router(speech_router)
