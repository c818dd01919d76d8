"""Main FastAPI application for mcpo-sync."""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes import router as api_router
from .config import Settings, get_settings
from .exceptions import (
    AuthError,
    FormatError,
    McpoIOError,
    McpoSyncError,
    NotFoundError,
    format_error,
)
from .host.bridge import HostFileBridge
from .host.docker import DockerHostRuntime
from .observability.logging import configure_logging
from .observability.notifications import NotificationCenter
from .openwebui.client import OpenWebUIClient
from .openwebui.http_client import close_http_client, get_http_client
from .services.configuration import ConfigurationService
from .storage.local_store import LocalStore
from .sync.openai_proxy import ensure_openai_proxy_connection
from .sync.queue import PassQueue
from .sync.reconciler import ToolServerSync

logger = logging.getLogger(__name__)


def error_status(error: McpoSyncError) -> int:
    """HTTP status for a domain error."""
    if isinstance(error, AuthError):
        return 401
    if isinstance(error, FormatError):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, McpoIOError):
        return 502
    return 500


def make_token_provider(settings: Settings, store: LocalStore):
    """The environment token wins over the stored one."""

    def provider():
        return settings.openwebui_token or store.get_token()

    return provider


async def run_startup_sync(service: ConfigurationService):
    """Restore and reconcile the document once at startup."""
    try:
        result = await service.startup_sync()
        logger.info("Startup sync finished (ok=%s)", result.ok)
    except McpoSyncError as e:
        logger.error("Failed to sync configuration on startup: %s", format_error(e))


def _log_proxy_result(future: "asyncio.Future") -> None:
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.error("OpenAI proxy connection not ensured: %s", format_error(error))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    settings = get_settings()

    configure_logging(
        environment=settings.environment,
        log_level="DEBUG" if settings.debug else "INFO",
    )

    notifier = NotificationCenter()
    store = LocalStore(settings.get_store_path())

    runtime = DockerHostRuntime(helper_image=settings.helper_image)
    bridge = HostFileBridge(
        runtime,
        stack_identifier=settings.stack_identifier,
        config_relative_path=settings.config_relative_path,
        service_name=settings.mcpo_service_name,
        chunk_size=settings.write_chunk_size,
        atomic_writes=settings.atomic_writes,
    )

    # Warm up HTTP client (creates connection pool)
    get_http_client(settings.openwebui_timeout)
    client = OpenWebUIClient(
        settings.openwebui_base_url,
        token_provider=make_token_provider(settings, store),
        timeout=settings.openwebui_timeout,
    )

    queue = PassQueue()
    queue.start()
    sync = ToolServerSync(client, queue, settings.mcpo_base_url, notifier)
    service = ConfigurationService(bridge, sync, store, notifier, settings.mcpo_base_url)

    app.state.notifier = notifier
    app.state.local_store = store
    app.state.host_runtime = runtime
    app.state.pass_queue = queue
    app.state.openwebui_client = client
    app.state.config_service = service

    background = []
    if settings.ensure_openai_proxy:
        future = queue.submit(
            lambda: ensure_openai_proxy_connection(
                client, settings.openai_proxy_base_url, settings.openai_proxy_key
            ),
            name="openai proxy connection",
        )
        future.add_done_callback(_log_proxy_result)
    if settings.sync_on_startup:
        background.append(asyncio.create_task(run_startup_sync(service)))
    app.state.background_tasks = background

    logger.info("%s v%s started", settings.app_name, settings.app_version)
    logger.info("Environment: %s", settings.environment)
    logger.info("Open WebUI: %s", settings.openwebui_base_url)
    logger.info("mcpo proxy: %s", settings.mcpo_base_url)

    yield

    # Shutdown
    logger.info("Shutting down mcpo-sync...")

    for task in background:
        if not task.done():
            task.cancel()
    await asyncio.gather(*background, return_exceptions=True)

    await queue.stop(drain=False)
    logger.info("Pass queue stopped")

    await runtime.close()
    logger.info("Docker client closed")

    await close_http_client()
    logger.info("HTTP client closed")

    logger.info("mcpo-sync shutdown complete")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Keeps Open WebUI tool servers in sync with the mcpo configuration",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(McpoSyncError)
    async def handle_domain_error(request: Request, exc: McpoSyncError):
        status_code = error_status(exc)
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, format_error(exc))
        return JSONResponse(
            status_code=status_code,
            content={"detail": format_error(exc), "error": exc.__class__.__name__},
        )

    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health")
    async def health_check(request: Request):
        queue = getattr(request.app.state, "pass_queue", None)
        client = getattr(request.app.state, "openwebui_client", None)
        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
            "pending_passes": queue.pending if queue else 0,
            "token_configured": client.has_token() if client else False,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app


# Create app instance
app = create_app()
