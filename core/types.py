"""
Core data types for the medicine import pipeline.

Every value here is request-scoped: it is created for a single import or crawl
invocation and discarded afterwards. The only durable entity is the
``medicines`` row written by the datastore.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Protocol,
    runtime_checkable,
)


# ============================================================================
# Type aliases
# ============================================================================

URL = str
MedicineID = str
HTMLContent = str
MedicineRecord = Dict[str, Any]


# ============================================================================
# Enums
# ============================================================================


class TrustTier(str, Enum):
    """How much a source domain is trusted for copyright and accuracy."""

    TRUSTED = "trusted"
    ALLOWLISTED = "allowlisted"
    UNKNOWN = "unknown"


class ImportMode(str, Enum):
    """Outcome of a single URL import."""

    CREATED = "created"
    UPDATED = "updated"
    FAILED = "failed"


# ============================================================================
# Medicine draft
# ============================================================================


@dataclass
class MedicineData:
    """Medicine draft parsed from one product page."""

    name: str
    brand: Optional[str] = None
    generic_name: Optional[str] = None
    manufacturer: Optional[str] = None
    price: float = 0.0
    original_price: Optional[float] = None
    discount_percentage: Optional[float] = None
    description: Optional[str] = None
    dosage: Optional[str] = None
    pack_size: Optional[str] = None
    strength: Optional[str] = None
    dosage_form: Optional[str] = None
    uses: Optional[str] = None
    side_effects: Optional[str] = None
    requires_prescription: bool = False
    composition: Optional[str] = None
    composition_key: Optional[str] = None
    composition_family_key: Optional[str] = None
    image_url: Optional[str] = None
    original_image_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    image_hash: Optional[str] = None
    external_source_url: Optional[str] = None
    external_source_domain: Optional[str] = None
    source_attribution: Optional[str] = None

    @property
    def salt_composition(self) -> Optional[str]:
        return self.composition

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_record(self) -> MedicineRecord:
        """Column values for persistence; empty strings and None are dropped."""
        record: MedicineRecord = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if value is None or (isinstance(value, str) and not value.strip()):
                continue
            record[item.name] = value
        return record

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MedicineData":
        known = {item.name for item in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})


@dataclass
class ParsedProduct:
    """Parser output: the draft plus which strategy produced it."""

    medicine: MedicineData
    strategy: str
    warnings: List[str] = field(default_factory=list)


# ============================================================================
# Duplicate resolution
# ============================================================================


@dataclass
class DuplicateMatch:
    is_duplicate: bool
    existing_id: Optional[MedicineID] = None
    reason: Optional[str] = None

    def __post_init__(self):
        if self.is_duplicate and not self.existing_id:
            raise ValueError("A duplicate match must reference an existing record")

    @classmethod
    def none(cls) -> "DuplicateMatch":
        return cls(is_duplicate=False)


# ============================================================================
# Import
# ============================================================================


@dataclass
class ImportOptions:
    download_images: bool = False
    respect_robots: bool = True
    store_html_audit: bool = False
    skip_duplicate_check: bool = False


@dataclass
class ImportResult:
    success: bool
    mode: ImportMode
    medicine_id: Optional[MedicineID] = None
    medicine_data: Optional[MedicineData] = None
    dedupe_reason: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None
    audit_url: Optional[str] = None
    error_details: Optional[Dict[str, Any]] = None

    @property
    def duplicate(self) -> bool:
        return self.mode == ImportMode.UPDATED

    @classmethod
    def failed(
        cls,
        error: str,
        warnings: Optional[List[str]] = None,
        error_details: Optional[Dict[str, Any]] = None,
    ) -> "ImportResult":
        return cls(
            success=False,
            mode=ImportMode.FAILED,
            warnings=list(warnings or []),
            error=error,
            error_details=error_details,
        )

    def to_dict(self) -> Dict[str, Any]:
        """camelCase payload returned by the HTTP layer."""
        payload: Dict[str, Any] = {
            "success": self.success,
            "mode": self.mode.value,
            "warnings": list(self.warnings),
            "duplicate": self.duplicate,
        }
        if self.medicine_id:
            payload["medicineId"] = self.medicine_id
        if self.medicine_data is not None:
            payload["medicineData"] = self.medicine_data.to_dict()
        if self.medicine_id and self.medicine_data is not None:
            payload["medicine"] = {
                "id": self.medicine_id,
                "name": self.medicine_data.name,
            }
        if self.dedupe_reason:
            payload["dedupeReason"] = self.dedupe_reason
        if self.error:
            payload["error"] = self.error
        if self.error_details:
            payload["errorDetails"] = dict(self.error_details)
        if self.audit_url:
            payload["auditUrl"] = self.audit_url
        return payload


# ============================================================================
# Crawl
# ============================================================================


@dataclass
class CrawlOptions:
    max_products: int = 50
    max_discovery_pages: int = 10
    categories: List[str] = field(default_factory=lambda: ["bestsellers", "popular"])
    use_firecrawl: bool = True
    dry_run: bool = False
    include_otc: bool = True
    include_pagination: bool = True
    extra_seed_urls: List[str] = field(default_factory=list)


@dataclass
class CrawlResult:
    success: bool = False
    total_products_found: int = 0
    imported_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0
    errors: List[str] = field(default_factory=list)
    product_urls: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)

    @property
    def processed_count(self) -> int:
        return self.imported_count + self.skipped_count + self.failed_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "totalProductsFound": self.total_products_found,
            "importedCount": self.imported_count,
            "skippedCount": self.skipped_count,
            "failedCount": self.failed_count,
            "errors": list(self.errors),
            "productUrls": list(self.product_urls),
            "categories": list(self.categories),
        }


# ============================================================================
# Collaborator protocols
# ============================================================================


@runtime_checkable
class MedicineStore(Protocol):
    """Datastore operations the pipeline relies on."""

    async def insert_medicine(self, record: MedicineRecord) -> MedicineID:
        ...

    async def find_exact_match(
        self, composition_key: str, manufacturer: str, pack_size: str
    ) -> Optional[MedicineRecord]:
        ...

    async def find_by_family(self, family_key: str) -> List[MedicineRecord]:
        ...

    async def get_medicine(self, medicine_id: MedicineID) -> Optional[MedicineRecord]:
        ...

    async def update_medicine(
        self, medicine_id: MedicineID, changes: MedicineRecord
    ) -> None:
        ...


@runtime_checkable
class ObjectStore(Protocol):
    """Object storage operations used for images and HTML audits."""

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str,
        *,
        upsert: bool = True,
    ) -> str:
        ...

    def get_public_url(self, bucket: str, path: str) -> str:
        ...
