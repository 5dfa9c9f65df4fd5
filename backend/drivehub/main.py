"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from drivehub.api.router import api_router
from drivehub.core.config import settings
from drivehub.core.logging import get_logger, setup_logging
from drivehub.services.errors import DriveAuthError

# Initialize logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events."""
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.version,
        host=settings.host,
        port=settings.port,
        google_oauth_configured=settings.google_oauth_configured,
    )
    yield
    logger.info("shutting_down_application")


async def drive_auth_error_handler(request: Request, exc: DriveAuthError) -> JSONResponse:
    """Tell the client which Drive account has to be reconnected."""
    logger.warning(
        "drive_auth_error",
        path=request.url.path,
        account_id=exc.account_id,
        email=exc.email,
        error=exc.message,
    )
    payload = exc.to_dict()
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": payload["error"],
            "needsReconnect": payload["needs_reconnect"],
            "accountId": payload["account_id"],
            "accountEmail": payload["account_email"],
        },
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Aggregates multiple Google Drive accounts into one mirrored view",
        version=settings.version,
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    # Configure CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(DriveAuthError, drive_auth_error_handler)

    # Include API routes
    app.include_router(api_router)

    return app


# Create the application instance
app = create_app()


def main() -> None:
    """Run the application with uvicorn."""
    import uvicorn

    uvicorn.run(
        "drivehub.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
