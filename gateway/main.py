# gateway/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gateway.core import config
from gateway.api.routers.health import router as health_router
from gateway.api.routers.providers import router as providers_router
from gateway.api.routers.ai import router as ai_router
from gateway.providers.base import ConfigError, UpstreamError
from gateway.services.retrieval import ContextRetriever, NullRetriever
from gateway.services.settings import SettingsStore, settings_from_env

logger = logging.getLogger(__name__)


async def _config_error(request: Request, exc: ConfigError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc)})


async def _upstream_error(request: Request, exc: UpstreamError) -> JSONResponse:
    logger.warning("upstream error on %s: %s", request.url.path, exc)
    content = {"error": str(exc)}
    if exc.status is not None:
        content["upstream_status"] = exc.status
    return JSONResponse(status_code=502, content=content)


def create_app(
    settings_store: SettingsStore | None = None,
    retriever: ContextRetriever | None = None,
) -> FastAPI:
    logging.basicConfig(level=config.LOG_LEVEL)
    app = FastAPI(title="Notes AI Gateway", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # collaborators live on app.state and reach routers through Depends()
    app.state.settings_store = settings_store or settings_from_env()
    app.state.retriever = retriever or NullRetriever()

    app.add_exception_handler(ConfigError, _config_error)
    app.add_exception_handler(UpstreamError, _upstream_error)

    # Routers
    app.include_router(health_router)
    app.include_router(providers_router)
    app.include_router(ai_router)

    return app


app = create_app()
