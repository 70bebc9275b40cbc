"""
FastAPI application factory for the LLM gateway.

Usage:
    from api.app import create_app

    app = create_app()
    uvicorn.run(app, host="0.0.0.0", port=3000)
"""
import secrets
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import httpx
import uvicorn
from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.exceptions import HTTPException as StarletteHTTPException

from ai.adapters.local import LocalProvider
from ai.adapters.router import ProviderRouter
from api.routes import build_router
from core.config import Config, get_settings
from core.errors import ProviderUnavailableError
from core.logging import LOG_FILE, logger, setup_logging
from core.monitoring import MonitoringService
from services.task_service import TaskService

__version__ = "1.0.0"

_bearer = HTTPBearer(auto_error=False)


async def check_local_providers(router: ProviderRouter, monitoring: MonitoringService) -> None:
    """Run model selection for every enabled local backend and log the outcome."""
    for cfg in router.configs():
        if not cfg.enabled:
            continue
        provider = router.get(cfg.name)
        if not isinstance(provider, LocalProvider):
            continue
        try:
            model = await provider.select_model()
        except ProviderUnavailableError as e:
            logger.warning(f"{cfg.display_name} is enabled but not usable: {e}")
            monitoring.set_service_health(cfg.name.value, False)
        else:
            logger.info(f"{cfg.display_name} ready with model {model}")
            monitoring.set_service_health(cfg.name.value, True)


def create_app(
    config: Optional[Config] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    check_local_on_startup: bool = True,
) -> FastAPI:
    """
    Create the gateway application.

    Args:
        config: Settings and provider registry (defaults to the process-wide singleton).
        transport: Optional httpx transport shared by all adapters (tests inject a mock).
        check_local_on_startup: Probe enabled local backends when the app starts.
    """
    config = config or get_settings()
    monitoring = MonitoringService()
    provider_router = ProviderRouter.from_registry(config.providers, transport=transport)
    service = TaskService(provider_router, monitoring, api_version=config.app.API_VERSION)
    token = config.app.DEFAULT_ACCESS_TOKEN

    async def require_token(credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer)) -> None:
        if not token:
            return
        if credentials is None or not secrets.compare_digest(credentials.credentials, token):
            raise HTTPException(status_code=401, detail="Unauthorized")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"LLM gateway {__version__} starting (API {config.app.API_VERSION})")
        if check_local_on_startup:
            await check_local_providers(provider_router, monitoring)
        yield
        logger.info("LLM gateway stopped")

    app = FastAPI(
        title="LLM Gateway",
        description="One normalized API over local and hosted large language models.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.router = provider_router
    app.state.service = service
    app.state.monitoring = monitoring

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)

    app.include_router(
        build_router(config, provider_router, service, monitoring, require_token),
        prefix=f"/api/{config.app.API_VERSION}",
    )
    return app


def main() -> None:
    """Console entry point: serve the gateway with uvicorn."""
    settings = get_settings().app
    log_file = Path(settings.LOG_DIR) / LOG_FILE.name if settings.LOG_DIR else LOG_FILE
    setup_logging(settings.LOG_LEVEL, log_file)
    uvicorn.run(
        create_app(),
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
