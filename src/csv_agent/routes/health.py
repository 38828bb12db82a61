"""FastAPI routes for health checks."""
import time

from fastapi import APIRouter

from ..config.settings import ServerConfig


def create_health_router(config: ServerConfig) -> APIRouter:
    """Create router for health check endpoints."""
    router = APIRouter(tags=["health"])

    @router.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "timestamp": time.time(),
            "llm_provider": config.llm_provider,
        }

    return router
