"""Pydantic models for API request schemas."""
from pydantic import BaseModel, Field
from typing import Optional, List

from core.types import CrawlOptions, ImportOptions


class ImportOptionsModel(BaseModel):
    """
    Per-import behaviour flags.

    All flags default to the conservative setting: images stay hotlinked,
    robots.txt is honoured and no HTML snapshot is written.
    """
    download_images: bool = Field(default=False, alias="downloadImages", description="Re-host the product image")
    respect_robots: bool = Field(default=True, alias="respectRobots", description="Honour robots.txt")
    store_html_audit: bool = Field(default=False, alias="storeHtmlAudit", description="Archive the fetched HTML")
    skip_duplicate_check: bool = Field(
        default=False, alias="skipDuplicateCheck", description="Create a new record even when a duplicate exists"
    )

    class Config:
        populate_by_name = True

    def to_options(self) -> ImportOptions:
        return ImportOptions(
            download_images=self.download_images,
            respect_robots=self.respect_robots,
            store_html_audit=self.store_html_audit,
            skip_duplicate_check=self.skip_duplicate_check,
        )


class ImportRequest(BaseModel):
    """Request to import one product page."""
    url: Optional[str] = Field(default=None, description="Product page URL")
    options: Optional[ImportOptionsModel] = Field(default=None, description="Import flags")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "url": "https://www.1mg.com/drugs/dolo-650-tablet-74467",
                "options": {"downloadImages": True, "storeHtmlAudit": False},
            }
        }


class CrawlRequest(BaseModel):
    """Request to discover and import popular 1mg products."""
    max_products: int = Field(default=50, ge=1, alias="maxProducts", description="Upper bound on URLs to import")
    max_discovery_pages: int = Field(
        default=10, ge=1, alias="maxDiscoveryPages", description="Listing pages visited during discovery"
    )
    categories: List[str] = Field(default_factory=lambda: ["bestsellers", "popular"], description="Seed categories")
    use_firecrawl: bool = Field(default=True, alias="useFirecrawl", description="Use Firecrawl when configured")
    dry_run: bool = Field(default=False, alias="dryRun", description="Discover only, import nothing")
    include_otc: bool = Field(default=True, alias="includeOTC", description="Include OTC product pages")
    include_pagination: bool = Field(default=True, alias="includePagination", description="Follow listing pagination")
    extra_seed_urls: List[str] = Field(default_factory=list, alias="extraSeedUrls", description="Additional seed pages")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {"maxProducts": 20, "categories": ["bestsellers"], "dryRun": True}
        }

    def to_options(self) -> CrawlOptions:
        return CrawlOptions(
            max_products=self.max_products,
            max_discovery_pages=self.max_discovery_pages,
            categories=list(self.categories),
            use_firecrawl=self.use_firecrawl,
            dry_run=self.dry_run,
            include_otc=self.include_otc,
            include_pagination=self.include_pagination,
            extra_seed_urls=list(self.extra_seed_urls),
        )


class RefetchOptionsModel(BaseModel):
    overwrite_manual_changes: bool = Field(default=False, alias="overwriteManualChanges")
    store_html_audit: bool = Field(default=False, alias="storeHtmlAudit")

    class Config:
        populate_by_name = True


class RefetchRequest(BaseModel):
    """Request to refresh a stored medicine from its source page."""
    medicine_id: Optional[str] = Field(default=None, alias="medicineId", description="Medicine UUID")
    options: Optional[RefetchOptionsModel] = None

    class Config:
        populate_by_name = True


class BulkImportRequest(BaseModel):
    urls: Optional[List[str]] = Field(default=None, description="Product page URLs to import in order")
    options: Optional[ImportOptionsModel] = Field(default=None, description="Import flags applied to every URL")


class EnrichRequest(BaseModel):
    """Fill empty fields of an existing medicine from another source page."""
    url: str = Field(..., description="Source page URL")
    fields: Optional[List[str]] = Field(default=None, description="Fields to fill; defaults to composition and description")
