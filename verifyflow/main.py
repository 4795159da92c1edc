from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from verifyflow.config.logging import setup_logging
from verifyflow.config.settings import Settings, settings as default_settings
from verifyflow.v1.core.exceptions import (
    RequestContextMiddleware,
    VerifyflowException,
    general_exception_handler,
    http_exception_handler,
    verifyflow_exception_handler,
)
from verifyflow.v1.handlers.registry_init import register_domain_handlers
from verifyflow.v1.healthz import router as health_router
from verifyflow.v1.infra.queues.orchestrator import Orchestrator
from verifyflow.v1.infra.queues.routes import router as queues_router


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or default_settings

    # Initialize structured logging
    setup_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        orchestrator = Orchestrator(settings)
        app.state.orchestrator = orchestrator

        await orchestrator.start()
        register_domain_handlers(orchestrator.engine, settings)
        if settings.worker_enabled:
            await orchestrator.engine.start()

        try:
            yield
        finally:
            await orchestrator.close_all()

    app = FastAPI(
        title=settings.app_name,
        description="Job orchestration for KYC and AML verification workflows",
        version=settings.version,
        debug=settings.debug,
        lifespan=lifespan,
        # All endpoints are under the /v1/ prefix
        openapi_url="/v1/openapi.json" if settings.debug else None,
        docs_url="/v1/docs" if settings.debug else None,
        redoc_url="/v1/redoc" if settings.debug else None,
    )

    # Add middleware
    app.add_middleware(RequestContextMiddleware)

    # Add CORS middleware for development
    if settings.debug:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Add exception handlers
    app.add_exception_handler(VerifyflowException, verifyflow_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include routers with /v1 prefix
    app.include_router(health_router, prefix="/v1", tags=["health"])
    app.include_router(queues_router, prefix="/v1")

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "verifyflow.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug,
    )
