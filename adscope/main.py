from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from adscope.chat.agent import create_agent, create_provider
from adscope.config import Settings, settings
from adscope.llm.embeddings import Embedder, create_embedder
from adscope.llm.provider import LLMProvider
from adscope.storage.database import Database
from adscope.web.routes import router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(
    app_settings: Settings = settings,
    provider: LLMProvider | None = None,
    embedder: Embedder | None = None,
) -> FastAPI:
    """Build the API. Clients are created once here and injected downward."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        db = Database(app_settings.db_path, dimensions=app_settings.embedding_dimensions)
        await db.connect()

        llm = provider or create_provider(app_settings)
        app.state.db = db
        app.state.agent = create_agent(
            app_settings,
            db=db,
            provider=llm,
            embedder=embedder or create_embedder(app_settings),
        )

        logger.info(
            f"Ad Scope running at http://{app_settings.web_host}:{app_settings.web_port} "
            f"({llm.provider_name}/{llm.model_name})"
        )
        yield

        # Shutdown
        await db.close()

    app = FastAPI(title="Ad Scope", lifespan=lifespan)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "adscope.main:app",
        host=settings.web_host,
        port=settings.web_port,
        reload=True,
    )
