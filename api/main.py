"""
RFP Portal - FastAPI Application

API server for RFP publication, NDA-gated document access and company
membership.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.settings import settings
from config.logging_config import setup_logging
from api.auth.router import router as auth_router
from api.routes.rfps import router as rfps_router
from api.routes.documents import router as documents_router
from api.routes.ndas import router as ndas_router
from api.routes.registrations import router as registrations_router
from api.routes.companies import router as companies_router
from api.routes.questions import router as questions_router
from api.routes.submissions import router as submissions_router
from api.routes.notifications import router as notifications_router
from api.middleware.error_handler import setup_error_handlers
from api.middleware.logging import LoggingMiddleware
from api.middleware.rate_limit import setup_rate_limiting

# Set up logging
logger = setup_logging(log_level=settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management."""
    logger.info("Starting RFP Portal API...")
    logger.info(f"Environment: {settings.api_env}")

    if settings.api_env == "development":
        from database.connection import init_db
        await init_db()

    yield

    from database.connection import close_db
    from workers.queue import close_redis_pool

    await close_redis_pool()
    await close_db()
    logger.info("Shutting down RFP Portal API...")


def create_app(rate_limit: bool = True) -> FastAPI:
    """Build the application. Tests disable rate limiting."""
    app = FastAPI(
        title="RFP Portal API",
        description="RFP publication with NDA-gated document access",
        version="1.0.0",
        lifespan=lifespan
    )

    # Set up error handlers (before middleware)
    setup_error_handlers(app)

    # Set up rate limiting
    setup_rate_limiting(app, enabled=rate_limit)

    # Add logging middleware
    app.add_middleware(LoggingMiddleware)

    # Configure CORS (should be last middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # v1 API routes
    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(rfps_router, prefix="/api/v1")
    app.include_router(documents_router, prefix="/api/v1")
    app.include_router(ndas_router, prefix="/api/v1")
    app.include_router(registrations_router, prefix="/api/v1")
    app.include_router(companies_router, prefix="/api/v1")
    app.include_router(questions_router, prefix="/api/v1")
    app.include_router(submissions_router, prefix="/api/v1")
    app.include_router(notifications_router, prefix="/api/v1")

    @app.get("/")
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "RFP Portal API",
            "version": "1.0.0",
            "status": "running",
            "environment": settings.api_env,
            "docs": "/docs"
        }

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "environment": settings.api_env
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_env == "development"
    )
