"""
YAP local services: export profiles and dispatch, usage metrics, user
settings, the Ollama chat proxy and read-along chunking, served by one
FastAPI app.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import structlog

from yap.api.v1.routers import chat, exports, health, metrics, profiles, read_along
from yap.api.v1.routers import settings as settings_router
from yap.config import configure_structlog, settings
from yap.export.profiles import initialize_profile_store
from yap.llm.proxy import initialize_ollama_client
from yap.metrics.store import initialize_metrics_store
from yap.settings_store import initialize_settings_store

configure_structlog()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown."""
    logger.info(
        "YAP API starting up",
        version=settings.api_version,
        environment=settings.get_environment_display(),
        debug=settings.debug,
        data_dir=str(settings.data_dir),
    )

    settings_store = initialize_settings_store(settings.settings_path)
    user_settings = settings_store.load()
    initialize_metrics_store(settings.metrics_db_path, user_settings.metrics.to_config())
    initialize_profile_store(settings.profiles_db_path)
    initialize_ollama_client(
        settings.ollama_url, settings.ollama_model, settings.ollama_timeout_seconds
    )

    if settings.exporter_relay_url:
        logger.info("Exporter relay configured", relay_url=settings.exporter_relay_url)
    else:
        logger.warning("EXPORTER_RELAY_URL not configured - gitlab/github/sftp exports will fail")

    logger.info("API routes registered", endpoints=len(app.routes))

    yield

    logger.info("YAP API shutting down")


app = FastAPI(
    title=settings.api_title,
    description=f"""
    **Local services for the YAP voice notes app**

    * **Export profiles**: webhook, GitLab commit and legacy exporter targets
    * **Export dispatch**: direct delivery with relay fallback when the browser blocks a call
    * **Metrics**: local usage events with retention
    * **Settings**: user preferences over defaults
    * **Assistant**: chat through a local Ollama runtime

    Currently running in **{settings.get_environment_display()}** mode.
    """,
    version=settings.api_version,
    debug=settings.debug,
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production() else None,
    redoc_url="/redoc" if not settings.is_production() else None,
    openapi_url="/openapi.json" if not settings.is_production() else None,
)

app.add_middleware(CORSMiddleware, **settings.get_cors_config())

app.include_router(health.router)
app.include_router(profiles.router)
app.include_router(exports.router)
app.include_router(metrics.router)
app.include_router(settings_router.router)
app.include_router(chat.router)
app.include_router(read_along.router)


@app.get("/", tags=["Root"])
async def root():
    """Basic API information."""
    return {
        "service": settings.api_title,
        "version": settings.api_version,
        "environment": settings.get_environment_display(),
        "status": "operational",
        "docs": "/docs" if not settings.is_production() else "disabled",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "yap.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_config=None,
    )
