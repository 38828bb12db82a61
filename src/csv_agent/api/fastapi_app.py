"""FastAPI application setup, wiring and middleware."""
import logging
from typing import Callable, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..agent.checkpoint import CheckpointStore, SupabaseCheckpointStore
from ..agent.executor import AgentExecutor
from ..agent.service import AgentService
from ..analysis.csv_engine import CsvAnalysisEngine
from ..config.settings import ServerConfig
from ..core.exceptions import (
    CSVAgentError,
    ResourceNotFoundError,
    ResourceTooLargeError,
    ResourceValidationError,
    SessionNotFoundError,
)
from ..core.storage import DiskStorage
from ..core.supabase_client import SupabaseStore
from ..llm.providers.base import LLMProvider
from ..routes.health import create_health_router
from ..routes.messages import create_messages_router
from ..routes.resources import create_resources_router
from ..routes.sessions import create_sessions_router
from ..services.resource_service import ResourceService
from ..services.session_service import SessionService

logger = logging.getLogger(__name__)


def _status_for(exc: CSVAgentError) -> int:
    if isinstance(exc, (SessionNotFoundError, ResourceNotFoundError)):
        return 404
    if isinstance(exc, ResourceTooLargeError):
        return 413
    if isinstance(exc, ResourceValidationError):
        return 400
    return 500


def create_app(
    config: ServerConfig,
    store: Optional[SupabaseStore] = None,
    checkpoints: Optional[CheckpointStore] = None,
    provider_factory: Optional[Callable[[ServerConfig], LLMProvider]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Server configuration
        store: Supabase store; built from ``config`` when omitted
        checkpoints: Checkpoint store; defaults to the Supabase-backed one
        provider_factory: Overrides how the LLM provider is built per execution
        transport: httpx transport used for URL ingestion

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(
        title="CSV Agent",
        description="Chat sessions over uploaded CSV files, answered by a tool-using LLM agent.",
        version="0.1.0",
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info(f"Received request: {request.method} {request.url.path}")
        try:
            response = await call_next(request)
            logger.info(f"Response status: {response.status_code}")
            return response
        except Exception as e:
            logger.error(f"Error processing request: {e}", exc_info=True)
            raise

    @app.exception_handler(CSVAgentError)
    async def handle_agent_error(request: Request, exc: CSVAgentError):
        status = _status_for(exc)
        if status >= 500:
            logger.error(f"Unhandled error for {request.method} {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(status_code=status, content={"detail": str(exc)})

    if store is None:
        store = SupabaseStore(supabase_url=config.supabase_url, supabase_key=config.supabase_key)
    if checkpoints is None:
        checkpoints = SupabaseCheckpointStore(store)
    storage = DiskStorage(config.uploads_dir)
    engine = CsvAnalysisEngine(config.uploads_dir)

    resource_service = ResourceService(
        store,
        storage,
        max_bytes=config.upload_max_bytes,
        fetch_timeout=config.url_fetch_timeout,
        transport=transport
    )
    session_service = SessionService(store, resource_service, checkpoints)
    executor = AgentExecutor(config, checkpoints, resource_service, engine, provider_factory)
    agent_service = AgentService(session_service, executor)

    app.include_router(create_health_router(config))
    app.include_router(create_sessions_router(session_service))
    app.include_router(create_resources_router(session_service, resource_service))
    app.include_router(create_messages_router(session_service, agent_service))

    app.state.config = config
    app.state.sessions = session_service
    app.state.resources = resource_service
    app.state.agent = agent_service

    return app
