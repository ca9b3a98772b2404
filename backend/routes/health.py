"""Health check endpoint."""

from fastapi import APIRouter, Depends

from backend.dependencies import get_knowledge
from solana_stories.knowledge import KnowledgeBase

router = APIRouter()


@router.get("/health")
async def health(knowledge: KnowledgeBase = Depends(get_knowledge)):
    """Health check, including whether the knowledge base is loaded."""
    return {"status": "ok", "knowledge_base": knowledge.is_ready}
