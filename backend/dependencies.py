"""FastAPI dependencies resolving the services built by create_app()."""

from fastapi import Request

from solana_stories.knowledge import KnowledgeBase
from solana_stories.library import StoryLibrary
from solana_stories.llm import StoryClient
from solana_stories.orchestrator import SessionOrchestrator


def get_orchestrator(request: Request) -> SessionOrchestrator:
    return request.app.state.orchestrator


def get_story_client(request: Request) -> StoryClient:
    return request.app.state.story_client


def get_knowledge(request: Request) -> KnowledgeBase:
    return request.app.state.knowledge


def require_knowledge(request: Request) -> KnowledgeBase:
    """Make sure the knowledge base is loaded before a story is generated.

    Raises InitializationError (503) if the assets still cannot be loaded.
    """
    knowledge = get_knowledge(request)
    knowledge.initialize()
    return knowledge


def get_library(request: Request) -> StoryLibrary:
    return request.app.state.library
