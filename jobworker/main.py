from fastapi import FastAPI

from jobworker.config.logging import setup_logging
from jobworker.config.settings import get_settings
from jobworker.healthz import router as health_router


def create_app() -> FastAPI:
    """Create the worker's health API."""
    settings = get_settings()

    setup_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        description="Health and queue status for the background job worker",
        version=settings.version,
        debug=settings.debug,
        openapi_url="/v1/openapi.json" if settings.debug else None,
        docs_url="/v1/docs" if settings.debug else None,
        redoc_url=None,
    )

    app.include_router(health_router, prefix="/v1", tags=["health"])

    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "jobworker.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
