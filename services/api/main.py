"""FastAPI backend for the medicine URL importer."""
import logging

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from .config import get_settings
from .routes import health, medicines
from core.di.container import build_container
from database.manager import DatabaseManager
from database.object_storage import ObjectStorage
from utils.logger import setup_logger


# Get settings
settings = get_settings()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events:
    - Startup: logging, database pool and schema, shared HTTP client, component wiring
    - Shutdown: close the HTTP client and database connections

    Args:
        app: FastAPI application instance
    """
    # Startup
    setup_logger(None, getattr(logging, settings.log_level.upper(), logging.INFO), settings.log_file)
    logger.info("Starting up...")
    logger.info(f"CORS Origins: {settings.cors_origins}")

    app.state.db = DatabaseManager(settings.database_url)
    await app.state.db.init_pool()
    await app.state.db.ensure_schema()
    logger.info("Database pool initialized")

    app.state.http_client = httpx.AsyncClient(
        timeout=settings.request_timeout_seconds, follow_redirects=True
    )
    storage = ObjectStorage(
        settings.s3_endpoint,
        settings.s3_access_key,
        settings.s3_secret_key,
        public_url=settings.s3_public_url,
    )
    app.state.storage = storage
    app.state.container = build_container(settings, app.state.http_client, app.state.db, storage)

    yield

    # Shutdown
    logger.info("Shutting down...")
    await app.state.http_client.aclose()
    await app.state.db.close()
    logger.info("Database pool closed")


# Create FastAPI application
app = FastAPI(
    title="Medicine Importer API",
    version="1.0.0",
    description="""
    Imports medicine product pages from pharmacy retailers.

    Features:
    - Single URL import with duplicate detection
    - 1mg popular-product crawl
    - Bulk URL import
    - Re-fetch and enrichment of stored medicines
    - Health monitoring

    Architecture:
    - Backend: FastAPI + asyncpg + httpx
    - Database: PostgreSQL
    - Object storage: S3-compatible (MinIO)
    - Discovery: Firecrawl API with direct-fetch fallback
    """,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(
    medicines.router,
    prefix="/api",
    tags=["medicines"]
)
app.include_router(
    health.router,
    prefix="/api",
    tags=["health"]
)


@app.get("/")
def root():
    """
    Root endpoint.

    Returns:
        dict: Service status and name
    """
    return {
        "status": "ok",
        "service": "medicine-importer-api",
        "version": "1.0.0",
        "docs": "/api/docs"
    }


@app.get("/api")
def api_root():
    """
    API root endpoint.

    Returns available API endpoints and documentation links.
    """
    return {
        "message": "Medicine Importer API",
        "version": "1.0.0",
        "endpoints": {
            "import": "/api/import-medicine-from-url",
            "crawl": "/api/crawl-1mg-popular",
            "bulk": "/api/bulk-import-urls",
            "refetch": "/api/refetch-medicine",
            "enrich": "/api/medicines/{medicine_id}/enrich",
            "health": "/api/health",
            "docs": "/api/docs",
            "redoc": "/api/redoc"
        }
    }


if __name__ == "__main__":
    import uvicorn

    # Run development server
    uvicorn.run(
        "services.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
