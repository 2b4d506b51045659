from typing import Optional
from contextlib import asynccontextmanager
from fastapi import FastAPI
import structlog

from support_context.application.bootstrap import build_context_manager
from support_context.domain.context.context_manager import ContextManager
from support_context.infrastructure.config.settings import Settings
from support_context.infrastructure.observability.logging import setup_logging
from .route.contexts import router as contexts_router

logger = structlog.get_logger(__name__)


def create_app(manager: Optional[ContextManager] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Admin API over one context manager instance"""

    settings = settings or Settings()
    manager = manager or build_context_manager(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        manager.memory.start()
        logger.info("Context service started")
        yield
        await manager.memory.stop()
        logger.info("Context service shutdown")

    app = FastAPI(title="Support Context Service", lifespan=lifespan)
    app.state.context_manager = manager
    app.include_router(contexts_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        stats = await manager.memory.get_cache_stats()
        return {
            "status": "healthy",
            "cached_conversations": stats["size"],
            "timestamp": manager.clock().isoformat()
        }

    return app


if __name__ == "__main__":
    import uvicorn

    settings = Settings.from_env()
    setup_logging(settings.log_level, settings.log_format, settings.service_name)
    uvicorn.run(create_app(settings=settings), host="0.0.0.0", port=8000)
