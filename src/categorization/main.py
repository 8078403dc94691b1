"""FastAPI application entry point for the PR categorization service.

This module provides the HTTP surface of the categorization pipeline:
- GET /api/pull-requests/categorize?pr_id=<int>: categorize one pull request
- GET /health, GET /ready: liveness and readiness probes
- GET /metrics: Prometheus metrics

Configuration values are logged on startup with secrets redacted.
"""

import hmac
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CollectorRegistry

from .config import CategorizationSettings, get_settings
from .errors import CategorizationError
from .github.client import GitHubClient
from .github.tokens import InstallationTokenManager
from .metrics import CategorizationMetrics
from .orchestrator import CategorizationOrchestrator
from .state.repository import (
    CategorizationStore,
    InMemoryCategorizationStore,
    PostgresCategorizationStore,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _redact_secret(value: Optional[str], visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters.

    Args:
        value: The secret value to redact.
        visible_chars: Number of characters to show at the start.

    Returns:
        Redacted string with asterisks replacing hidden characters.
    """
    if not value:
        return "(not set)"
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(settings: CategorizationSettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info("Categorization service configuration:")
    logger.info(f"  GitHub Base URL: {settings.github_base_url}")
    logger.info(f"  GitHub App ID: {settings.github_app_id}")
    logger.info("  GitHub App Private Key: ****")
    logger.info(f"  GitHub Timeout Seconds: {settings.github_timeout_seconds}")
    logger.info(f"  Generation Timeout Seconds: {settings.generation_timeout_seconds}")
    logger.info(
        f"  Token Refresh Buffer Seconds: {settings.token_refresh_buffer_seconds}"
    )
    logger.info(f"  Database URL: {_redact_secret(settings.database_url, 13)}")
    logger.info(f"  API Token: {_redact_secret(settings.api_token)}")
    logger.info(f"  Host: {settings.host}")
    logger.info(f"  Port: {settings.port}")


def _create_store(settings: CategorizationSettings) -> CategorizationStore:
    """Create the persistence store selected by configuration."""
    if settings.database_url:
        return PostgresCategorizationStore(settings.database_url)

    logger.warning(
        "No database_url configured, using in-memory store (data is not persisted)"
    )
    return InMemoryCategorizationStore()


def _build_orchestrator(
    cfg: CategorizationSettings,
    store: CategorizationStore,
    metrics: CategorizationMetrics,
) -> CategorizationOrchestrator:
    """Wire all pipeline dependencies into a CategorizationOrchestrator.

    Args:
        cfg: Validated service settings.
        store: Persistence store.
        metrics: Metrics sink shared by the orchestrator and token manager.

    Returns:
        Fully wired CategorizationOrchestrator.
    """
    token_manager = InstallationTokenManager(
        app_id=cfg.github_app_id,
        private_key=cfg.github_app_private_key,
        base_url=cfg.github_base_url,
        refresh_buffer_seconds=cfg.token_refresh_buffer_seconds,
        timeout=cfg.github_timeout_seconds,
        metrics=metrics,
    )
    github_client = GitHubClient(
        base_url=cfg.github_base_url,
        timeout=cfg.github_timeout_seconds,
    )
    return CategorizationOrchestrator(
        store=store,
        token_manager=token_manager,
        github_client=github_client,
        metrics=metrics,
        generation_timeout=cfg.generation_timeout_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown.

    Handles:
    - Configuration loading and validation
    - Logging configuration (with secrets redacted)
    - Store connection and dependency wiring
    - Graceful shutdown and cleanup
    """
    logger.info("Categorization service starting up...")

    state = app.state
    if state.settings is None:
        state.settings = get_settings()
    _log_configuration(state.settings)

    if state.store is None:
        state.store = _create_store(state.settings)
    if isinstance(state.store, PostgresCategorizationStore):
        await state.store.connect()

    if state.orchestrator is None:
        state.orchestrator = _build_orchestrator(
            state.settings, state.store, state.metrics
        )

    logger.info("Categorization service started successfully")

    yield

    logger.info("Categorization service shutting down...")

    orchestrator = state.orchestrator
    if isinstance(orchestrator, CategorizationOrchestrator):
        await orchestrator.github_client.close()
        await orchestrator.token_manager.close()
    if isinstance(state.store, PostgresCategorizationStore):
        await state.store.disconnect()

    logger.info("Categorization service shutdown complete")


router = APIRouter()


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _is_authorized(request: Request) -> bool:
    settings: Optional[CategorizationSettings] = request.app.state.settings
    if settings is None:
        return False
    scheme, _, credentials = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not credentials:
        return False
    return hmac.compare_digest(credentials.strip(), settings.api_token)


def _parse_pr_id(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    try:
        value = int(raw.strip())
    except ValueError:
        return None
    return value if value > 0 else None


@router.get("/health")
async def health():
    """Liveness probe endpoint.

    Returns:
        dict: Status indicating the application is healthy.
    """
    return {"status": "healthy"}


@router.get("/ready")
async def ready(request: Request):
    """Readiness probe endpoint.

    Checks store connectivity. Returns 503 while the store is unavailable.
    """
    store = request.app.state.store
    database_status = "unhealthy"
    if store is not None:
        try:
            if await store.health_check():
                database_status = "healthy"
        except CategorizationError:
            logger.exception("Store health check failed")

    ready_now = database_status == "healthy"
    return JSONResponse(
        {
            "status": "ready" if ready_now else "not_ready",
            "dependencies": {"database": database_status},
        },
        status_code=200 if ready_now else 503,
    )


@router.get("/metrics", response_class=PlainTextResponse)
async def metrics(request: Request):
    """Prometheus metrics endpoint."""
    return PlainTextResponse(request.app.state.metrics.generate_output())


@router.get("/api/pull-requests/categorize")
async def categorize_pull_request(request: Request, pr_id: Optional[str] = None):
    """Categorize a pull request with its organization's AI provider.

    Requires ``Authorization: Bearer <api_token>``.

    Returns:
        200 with ``{"success": true, "category": {...}, "message": ...}``,
        otherwise ``{"error": <message>}`` with the status of the failure.
    """
    if not _is_authorized(request):
        return _error("Unauthorized", 401)

    parsed_id = _parse_pr_id(pr_id)
    if parsed_id is None:
        return _error("Missing or invalid pr_id", 400)

    orchestrator: Optional[CategorizationOrchestrator] = request.app.state.orchestrator
    if orchestrator is None:
        logger.error("Categorization service not initialized")
        return _error("Service not initialized", 503)

    try:
        result = await orchestrator.categorize_pull_request(parsed_id)
    except CategorizationError as exc:
        logger.warning(
            "Categorization request failed",
            extra={
                "pr_id": parsed_id,
                "status_code": exc.http_status,
                "error": exc.message,
            },
        )
        return _error(exc.message, exc.http_status)
    except Exception as exc:
        logger.exception(
            "Unexpected categorization failure", extra={"pr_id": parsed_id}
        )
        return _error(f"Categorization failed: {exc}", 500)

    return result.to_response()


def create_app(
    settings: Optional[CategorizationSettings] = None,
    store: Optional[CategorizationStore] = None,
    orchestrator: Optional[CategorizationOrchestrator] = None,
    metrics: Optional[CategorizationMetrics] = None,
) -> FastAPI:
    """Create the FastAPI application.

    Components that are not supplied are built from settings at startup.

    Args:
        settings: Service settings; loaded from the environment if None.
        store: Persistence store; chosen from database_url if None.
        orchestrator: Pre-wired orchestrator (used by tests).
        metrics: Metrics container; a private registry is created if None.

    Returns:
        Configured FastAPI application.
    """
    application = FastAPI(
        title="PR Categorizer",
        description="AI-assisted categorization of GitHub pull requests",
        version="1.0.0",
        lifespan=lifespan,
    )
    application.state.settings = settings
    application.state.store = store
    application.state.orchestrator = orchestrator
    application.state.metrics = metrics or CategorizationMetrics(
        registry=CollectorRegistry()
    )
    application.include_router(router)
    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    # For local development, load settings to get host/port
    dev_settings = get_settings()
    uvicorn.run(
        "src.categorization.main:app",
        host=dev_settings.host,
        port=dev_settings.port,
        reload=True,
    )
