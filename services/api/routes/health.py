"""Health check endpoint."""
from typing import Optional

from fastapi import APIRouter, Depends

from ..config import Settings, get_settings
from ..dependencies import get_db, get_storage
from database.manager import DatabaseManager
from database.object_storage import ObjectStorage


router = APIRouter()


async def _storage_status(storage: Optional[ObjectStorage], settings: Settings) -> str:
    if storage is None:
        return "disabled"
    try:
        for bucket in (settings.image_bucket, settings.audit_bucket):
            if not await storage.bucket_exists(bucket):
                return f"missing bucket: {bucket}"
    except Exception as e:
        return f"error: {e}"
    return "ok"


@router.get("/health")
async def health_check(
    db: DatabaseManager = Depends(get_db),
    storage: Optional[ObjectStorage] = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    """
    Report whether the medicines database and object storage are reachable.

    A missing image or audit bucket is reported but is not fatal: buckets
    are created on first upload.

    Example response:
        ```json
        {
            "status": "ok",
            "database": "ok",
            "storage": "missing bucket: sources"
        }
        ```
    """
    try:
        await db.execute("SELECT 1")
        db_status = "ok"
    except Exception as e:
        db_status = f"error: {e}"

    return {
        "status": "ok",
        "database": db_status,
        "storage": await _storage_status(storage, settings),
    }
