import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from release_registry.api.registry import router as registry_router
from release_registry.core.config import RegistryConfig, load_config
from release_registry.core.dependencies import build_services
from release_registry.domain.errors import RegistryError

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def create_app(config: Optional[RegistryConfig] = None, http: Optional[httpx.AsyncClient] = None) -> FastAPI:
    """
    Build the registry application.

    Services are created in the lifespan so the HTTP client and the refresh
    worker are bound to the running event loop.
    """
    if config is None:
        config = load_config()
    configure_logging(config.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services = build_services(config, http)
        app.state.services = services
        services.refresh_queue.start()
        logger.info(f"Registry started (data dir {config.data_dir})")
        logger.info(f"Signing keys available for namespaces: {services.key_lookup.namespaces_with_keys()}")
        try:
            yield
        finally:
            await services.aclose()
            logger.info("Registry stopped")

    app = FastAPI(
        title="Release Registry",
        version="0.1.0",
        description="Provider and module registry backed by GitHub releases.",
        lifespan=lifespan,
    )
    app.state.config = config

    @app.exception_handler(RegistryError)
    async def registry_error_handler(request: Request, exc: RegistryError) -> JSONResponse:
        logger.error(f"Error handling {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"errors": [str(exc)]})

    @app.get("/health")
    async def health() -> dict:
        """
        Lightweight health check endpoint.
        """
        return {"status": "ok"}

    app.include_router(registry_router, tags=["registry"])
    return app


if __name__ == "__main__":
    """
    Allow running `python -m release_registry.main` to start the Uvicorn
    development server.
    """
    import uvicorn

    uvicorn.run(
        "release_registry.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
    )
