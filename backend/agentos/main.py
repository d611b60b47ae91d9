import logging

from fastapi import FastAPI
from fastapi import Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agentos.config import Settings
from agentos.config import get_settings
from agentos.constants import AGENTS_PREFIX
from agentos.constants import API_PREFIX
from agentos.constants import CONTEXT_MAPPINGS_PREFIX
from agentos.constants import ERRORS_PREFIX
from agentos.constants import INTEGRATIONS_PREFIX
from agentos.constants import PLUGIN_ENGINE_PREFIX
from agentos.core.factory import Services
from agentos.core.factory import build_services
from agentos.database import initialize_database
from agentos.routers.admin import router as admin_router
from agentos.routers.agents import router as agents_router
from agentos.routers.context_mappings import router as context_mappings_router
from agentos.routers.errors import router as errors_router
from agentos.routers.integrations import router as integrations_router
from agentos.routers.metrics import router as metrics_router
from agentos.routers.plugin_engine import router as plugin_engine_router
from agentos.services.scheduler_service import SchedulerService

_settings = get_settings()

# --------------------------------------------------------------------------
# LOGGING CONFIGURATION
# --------------------------------------------------------------------------
#
# - Default log level: INFO
# - Set at runtime with LOG_LEVEL (e.g. LOG_LEVEL=WARNING for CI)
#
_log_level = getattr(logging, _settings.log_level.upper(), logging.INFO)
if not isinstance(_log_level, int):
    _log_level = logging.INFO
logging.basicConfig(level=_log_level, format="%(levelname)s - %(message)s", handlers=[logging.StreamHandler()])

# httpx logs every outbound request at INFO
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def _cors_origins(settings: Settings) -> list[str]:
    if settings.auth_disabled:
        return ["*"]
    if settings.allowed_cors_origins.strip():
        return [o.strip() for o in settings.allowed_cors_origins.split(",") if o.strip()]
    # Safe default: only the local frontend
    return ["http://localhost:3000"]


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    """Build the FastAPI application.

    *services* lets tests inject registries and LLM clients backed by fakes;
    by default they are built from *settings*.
    """

    settings = settings or _settings
    app = FastAPI(redirect_slashes=True)
    app.state.services = services or build_services(settings)
    app.state.scheduler_service = None

    @app.exception_handler(Exception)
    async def internal_error(request: Request, exc: Exception):
        """Log unexpected exceptions and return a generic 500 body."""
        logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "details": str(exc)},
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(settings),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include our API routers with centralized prefixes
    app.include_router(agents_router, prefix=f"{API_PREFIX}{AGENTS_PREFIX}")
    app.include_router(integrations_router, prefix=f"{API_PREFIX}{INTEGRATIONS_PREFIX}")
    app.include_router(errors_router, prefix=f"{API_PREFIX}{ERRORS_PREFIX}")
    app.include_router(context_mappings_router, prefix=f"{API_PREFIX}{CONTEXT_MAPPINGS_PREFIX}")
    app.include_router(plugin_engine_router, prefix=f"{API_PREFIX}{PLUGIN_ENGINE_PREFIX}")
    app.include_router(admin_router, prefix=API_PREFIX)
    app.include_router(metrics_router)  # no prefix – Prometheus expects /metrics

    @app.on_event("startup")
    async def startup_event():
        """Create tables and start the in-process scheduler when enabled."""
        try:
            initialize_database()
            logger.info("Database tables initialized")

            if settings.scheduler_enabled and not settings.testing:
                app.state.scheduler_service = SchedulerService(app.state.services)
                await app.state.scheduler_service.start()
        except Exception as e:
            logger.error(f"Error during startup: {e}")

    @app.on_event("shutdown")
    async def shutdown_event():
        try:
            if app.state.scheduler_service is not None:
                await app.state.scheduler_service.stop()
        except Exception as e:
            logger.error(f"Error stopping scheduler service: {e}")

    @app.get("/")
    async def read_root():
        """Return a simple message to indicate the API is working."""
        return {"message": "AgentOS API is running"}

    return app


app = create_app()
