"""Medicine import endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..dependencies import get_crawler, get_enricher, get_importer, get_refetcher
from ..models import (
    BulkImportRequest,
    CrawlRequest,
    EnrichRequest,
    ImportRequest,
    RefetchRequest,
)
from core.crawl_driver import PopularMedicineCrawler
from core.enrichment import MedicineEnricher
from core.import_orchestrator import MedicineImporter
from core.refetch import MedicineRefetcher
from core.types import ImportOptions, ImportResult
from utils.error_handling import (
    ErrorContext,
    ImporterError,
    RobotsDisallowedError,
    error_payload,
    log_unexpected_error,
)


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/import-medicine-from-url")
async def import_medicine_from_url(
    req: Optional[ImportRequest] = None,
    importer: MedicineImporter = Depends(get_importer),
):
    """
    Import one product page into the medicines table.

    Returns the ImportResult wire form. Known pipeline failures (robots
    denial, fetch or persistence errors) are reported with ``success: false``
    and HTTP 200; anything unexpected maps to HTTP 500.

    Example response (duplicate):
        ```json
        {
            "success": true,
            "mode": "updated",
            "duplicate": true,
            "medicineId": "8c1d...",
            "dedupeReason": "exact match on composition, manufacturer, and pack size",
            "warnings": []
        }
        ```
    """
    if req is None or not req.url:
        return JSONResponse(
            status_code=400,
            content={"success": False, "mode": "failed", "warnings": [], "error": "URL is required"},
        )

    options = req.options.to_options() if req.options else ImportOptions()
    try:
        result = await importer.import_from_url(req.url, options)
    except ImporterError as e:
        logger.warning(f"Import of {req.url} failed: {e}")
        payload = error_payload(e)
        failed = ImportResult.failed(payload["error"], error_details=payload.get("errorDetails"))
        return {**failed.to_dict(), "errorType": payload["errorType"]}
    except Exception as e:
        log_unexpected_error(e, ErrorContext(url=req.url, stage="import"))
        return JSONResponse(
            status_code=500,
            content={"success": False, "mode": "failed", "warnings": [], **error_payload(e)},
        )

    return result.to_dict()


@router.post("/crawl-1mg-popular")
async def crawl_popular_medicines(
    req: Optional[CrawlRequest] = None,
    crawler: PopularMedicineCrawler = Depends(get_crawler),
):
    """Discover popular 1mg product pages and import them sequentially."""
    options = (req or CrawlRequest()).to_options()
    try:
        result = await crawler.crawl(options)
    except Exception as e:
        logger.exception("Crawl failed")
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})
    return result.to_dict()


@router.post("/bulk-import-urls")
async def bulk_import_urls(
    req: Optional[BulkImportRequest] = None,
    crawler: PopularMedicineCrawler = Depends(get_crawler),
):
    urls = [url.strip() for url in (req.urls if req and req.urls else []) if url and url.strip()]
    if not urls:
        return JSONResponse(status_code=400, content={"success": False, "error": "No URLs provided"})

    options = req.options.to_options() if req.options else None
    try:
        result = await crawler.import_urls(urls, options=options)
    except Exception as e:
        logger.exception("Bulk import failed")
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})
    return result.to_dict()


@router.post("/refetch-medicine")
async def refetch_medicine(
    req: Optional[RefetchRequest] = None,
    refetcher: MedicineRefetcher = Depends(get_refetcher),
):
    """
    Refresh a medicine from its stored source URL.

    Source-derived fields are always updated; hand-edited fields only when
    ``overwriteManualChanges`` is set.
    """
    if req is None or not req.medicine_id:
        return JSONResponse(status_code=400, content={"success": False, "message": "Medicine ID is required"})

    overwrite = bool(req.options and req.options.overwrite_manual_changes)
    store_audit = bool(req.options and req.options.store_html_audit)
    try:
        result = await refetcher.refetch(
            req.medicine_id,
            overwrite_manual_changes=overwrite,
            store_html_audit=store_audit,
        )
    except ImporterError as e:
        logger.warning(f"Refetch of {req.medicine_id} failed: {e}")
        return {"success": False, "message": str(e), "updatedFields": []}
    except Exception as e:
        log_unexpected_error(e, ErrorContext(stage="refetch", additional_data={"medicine_id": req.medicine_id}))
        return JSONResponse(status_code=500, content={"success": False, "message": str(e)})

    return JSONResponse(status_code=result.status_code, content=result.to_dict())


@router.post("/medicines/{medicine_id}/enrich")
async def enrich_medicine(
    medicine_id: str,
    req: EnrichRequest,
    importer: MedicineImporter = Depends(get_importer),
    enricher: MedicineEnricher = Depends(get_enricher),
):
    """Fill empty fields of an existing medicine from a parsed source page."""
    try:
        prepared = await importer.prepare(req.url)
        updated = await enricher.enrich(medicine_id, prepared.medicine, req.fields)
    except RobotsDisallowedError as e:
        return {"success": False, "medicineId": medicine_id, "error": str(e), "updatedFields": []}
    except ValueError as e:
        return JSONResponse(status_code=400, content={"success": False, "error": str(e)})
    except ImporterError as e:
        logger.warning(f"Enrichment of {medicine_id} failed: {e}")
        return {"success": False, "medicineId": medicine_id, **error_payload(e), "updatedFields": []}

    if updated is None:
        return JSONResponse(status_code=404, content={"success": False, "error": "Medicine not found"})

    return {
        "success": True,
        "medicineId": medicine_id,
        "updatedFields": updated,
        "warnings": prepared.warnings,
    }
