import logging
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from backend.errors import register_error_handlers
from backend.routes import router
from solana_stories.config import Settings
from solana_stories.errors import InitializationError
from solana_stories.knowledge import KnowledgeBase
from solana_stories.library import StoryLibrary
from solana_stories.llm import HttpStoryClient, StoryClient
from solana_stories.orchestrator import SessionOrchestrator
from solana_stories.storage import ConversationStore

load_dotenv(Path(__file__).parent.parent / ".env")

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    story_client: StoryClient | None = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    knowledge = KnowledgeBase(settings.knowledge_dir)
    store = ConversationStore(settings.data_dir)
    client = story_client or HttpStoryClient(
        knowledge,
        provider_url=settings.provider_url,
        api_key=settings.api_key,
        provider_format=settings.provider_format,
        model=settings.model,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
        timeout=settings.timeout,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Generation routes retry the load per request until it succeeds
        try:
            knowledge.initialize()
        except InitializationError:
            logger.exception("Failed to initialize knowledge base")
        yield

    app = FastAPI(title="SolanaStories", lifespan=lifespan)
    app.state.settings = settings
    app.state.knowledge = knowledge
    app.state.story_client = client
    app.state.orchestrator = SessionOrchestrator(store, client)
    app.state.library = StoryLibrary(settings.data_dir)

    register_error_handlers(app)
    app.include_router(router, prefix="/api")

    return app


# Default app instance for uvicorn (reads settings from the environment)
app = create_app()
