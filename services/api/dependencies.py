"""FastAPI dependencies."""
from typing import Optional

from fastapi import Depends, Request

from core.crawl_driver import PopularMedicineCrawler
from core.di.container import Container
from core.enrichment import MedicineEnricher
from core.import_orchestrator import MedicineImporter
from core.refetch import MedicineRefetcher
from database.manager import DatabaseManager
from database.object_storage import ObjectStorage


async def get_db(request: Request) -> DatabaseManager:
    """
    Get database manager from app state.

    The manager is initialized during application startup and stored in app.state.

    Args:
        request: FastAPI request object

    Returns:
        DatabaseManager: Database connection pool manager
    """
    return request.app.state.db


async def get_container(request: Request) -> Container:
    return request.app.state.container


async def get_importer(container: Container = Depends(get_container)) -> MedicineImporter:
    """A fresh importer per request so robots.txt caching stays request-scoped."""
    return container.resolve("importer")


async def get_crawler(container: Container = Depends(get_container)) -> PopularMedicineCrawler:
    return container.resolve("crawler")


async def get_refetcher(container: Container = Depends(get_container)) -> MedicineRefetcher:
    return container.resolve("refetcher")


async def get_enricher(container: Container = Depends(get_container)) -> MedicineEnricher:
    return container.resolve("enricher")


async def get_storage(request: Request) -> Optional[ObjectStorage]:
    return getattr(request.app.state, "storage", None)
