# signaturepro/main.py

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from signaturepro.core.config import settings
from signaturepro.pipeline import SigningPipeline, build_pipeline
from signaturepro.utils.logger import setup_app_logging, get_logger
# Local application imports - Routes
from signaturepro.users.router import router as user_routes
from signaturepro.contracts.router import router as contract_routes
from signaturepro.audit_trail.router import router as audit_trail_routes
from signaturepro.realtime.router import router as realtime_routes

logger = get_logger(__name__)


def create_app(pipeline: Optional[SigningPipeline] = None) -> FastAPI:
    """
    Build the API. A pipeline passed in (tests) is used as is; otherwise
    one is built from settings at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Method for wiring the signing pipeline
        """
        if getattr(app.state, "pipeline", None) is None:
            app.state.pipeline = build_pipeline()
        yield

    app = FastAPI(
        title=f"SignaturePro - {settings.environment}",
        description="SignaturePro contract signing API",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.pipeline = pipeline

    # Configure logging
    if settings.environment.lower() != "production":
        setup_app_logging(
            app,
            log_level=settings.log_level,
            use_json=settings.log_json,
            log_file=settings.log_file,
            app_name=settings.app_name,
            environment=settings.environment,
        )
    else:
        setup_app_logging(
            app,
            log_level=settings.log_level,
            use_json=True,
            log_file=settings.log_file,
            app_name=settings.app_name,
            environment="production",
        )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_cors_urls.split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(user_routes)
    app.include_router(contract_routes)
    app.include_router(audit_trail_routes)
    app.include_router(realtime_routes)

    # Root API to check if the server is up
    @app.get("/", tags=["Base"])
    async def health_check():
        """
        Root API to check if the server is up
        """
        logger.info("Calling root API for testing")
        return {"status": "ok"}

    return app


signature_app = create_app()
