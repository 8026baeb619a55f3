"""
Single-URL medicine import.

Stages: classify the source domain, check robots.txt, fetch, parse, derive
composition keys, look for duplicates, archive the image, persist and
optionally keep an HTML audit copy.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from core.composition import apply_composition_keys
from core.domain_policy import DomainPolicy
from core.duplicate_resolver import DuplicateResolver
from core.image_archiver import ImageArchiver
from core.robots_checker import RobotsTxtChecker
from core.types import (
    ImportMode,
    ImportOptions,
    ImportResult,
    MedicineData,
    MedicineRecord,
    MedicineStore,
    ObjectStore,
    ParsedProduct,
    TrustTier,
)
from network.page_fetcher import PageFetcher
from parsers.product_parser import ProductParser
from utils.error_handling import (
    ROBOTS_DISALLOWED,
    ImageArchiveError,
    InvalidUrlError,
    RobotsDisallowedError,
    StorageError,
)
from utils.helpers import compute_checksum, extract_domain, validate_url
from utils.serialization import json_dumps

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_BUCKET = "sources"
DEFAULT_STOCK_QUANTITY = 10

CHECKSUM_FIELDS = ("name", "composition", "manufacturer", "price")


def source_checksum(medicine: MedicineData) -> str:
    """SHA-256 over the compact JSON of the fields that identify a listing."""
    payload = {
        key: getattr(medicine, key)
        for key in CHECKSUM_FIELDS
        if getattr(medicine, key) is not None
    }
    return compute_checksum(json_dumps(payload, compact=True))


@dataclass
class PreparedImport:
    """A fetched and parsed page, ready for duplicate checks and persistence."""

    url: str
    domain: str
    tier: TrustTier
    html: str
    parsed: ParsedProduct
    warnings: List[str] = field(default_factory=list)

    @property
    def medicine(self) -> MedicineData:
        return self.parsed.medicine


class MedicineImporter:
    def __init__(
        self,
        fetcher: PageFetcher,
        robots_checker: RobotsTxtChecker,
        parser: ProductParser,
        store: MedicineStore,
        resolver: DuplicateResolver,
        domain_policy: DomainPolicy,
        image_archiver: Optional[ImageArchiver] = None,
        storage: Optional[ObjectStore] = None,
        audit_bucket: str = DEFAULT_AUDIT_BUCKET,
    ):
        self.fetcher = fetcher
        self.robots_checker = robots_checker
        self.parser = parser
        self.store = store
        self.resolver = resolver
        self.domain_policy = domain_policy
        self.image_archiver = image_archiver
        self.storage = storage
        self.audit_bucket = audit_bucket

    async def prepare(self, url: str, options: Optional[ImportOptions] = None) -> PreparedImport:
        """
        Fetch and parse ``url`` without touching the datastore.

        Raises:
            InvalidUrlError: ``url`` is not an absolute http(s) URL
            RobotsDisallowedError: robots.txt denies the path
            FetchError: the page could not be retrieved
        """
        options = options or ImportOptions()
        if not validate_url(url):
            raise InvalidUrlError(f"Invalid URL: {url}", {"url": url})

        url = url.strip()
        domain = extract_domain(url)
        tier = self.domain_policy.classify(domain)
        warnings = self.domain_policy.review_warnings(domain, tier)
        logger.info(f"Importing {url} (domain={domain}, tier={tier.value})")

        if options.respect_robots:
            if not await self.robots_checker.is_allowed(url):
                raise RobotsDisallowedError(url)
        else:
            logger.info(f"robots.txt check bypassed for {url}")

        html = await self.fetcher.fetch_html(url)
        parsed = self.parser.parse(html, url)
        warnings.extend(self.domain_policy.annotate(w, tier) for w in parsed.warnings)

        medicine = parsed.medicine
        apply_composition_keys(medicine)
        medicine.external_source_url = url
        medicine.external_source_domain = domain
        medicine.source_attribution = self.domain_policy.attribution(domain, tier)

        return PreparedImport(
            url=url,
            domain=domain,
            tier=tier,
            html=html,
            parsed=parsed,
            warnings=warnings,
        )

    async def import_from_url(
        self, url: str, options: Optional[ImportOptions] = None
    ) -> ImportResult:
        """
        Import one product page.

        A robots.txt denial is reported as a failed result. Fetch and
        persistence errors propagate to the caller.
        """
        options = options or ImportOptions()
        try:
            prepared = await self.prepare(url, options)
        except RobotsDisallowedError:
            logger.warning(f"Import of {url} blocked by robots.txt")
            return ImportResult.failed(ROBOTS_DISALLOWED)

        medicine = prepared.medicine
        warnings = prepared.warnings

        if options.skip_duplicate_check:
            self._warn(warnings, "Duplicate check skipped - record created as new", prepared.tier)
        else:
            match = await self.resolver.find_duplicate(medicine)
            if match.is_duplicate:
                logger.info(f"Duplicate of {match.existing_id}: {match.reason}")
                return ImportResult(
                    success=True,
                    mode=ImportMode.UPDATED,
                    medicine_id=match.existing_id,
                    medicine_data=medicine,
                    dedupe_reason=match.reason,
                    warnings=warnings,
                )

        await self._handle_image(prepared, options)

        medicine_id = await self.store.insert_medicine(self.build_record(medicine))

        audit_url = None
        if options.store_html_audit:
            audit_url = await self.store_html_audit(prepared)

        logger.info(f"Imported {medicine.name} as {medicine_id}")
        return ImportResult(
            success=True,
            mode=ImportMode.CREATED,
            medicine_id=medicine_id,
            medicine_data=medicine,
            warnings=warnings,
            audit_url=audit_url,
        )

    def build_record(self, medicine: MedicineData) -> MedicineRecord:
        record: Dict[str, Any] = medicine.to_record()
        record.update(
            source_checksum=source_checksum(medicine),
            source_last_fetched=datetime.now(timezone.utc),
            stock_quantity=DEFAULT_STOCK_QUANTITY,
            is_active=True,
        )
        return record

    async def store_html_audit(self, prepared: PreparedImport) -> Optional[str]:
        """Keep the raw page at ``raw/{domain}/{sha256}.html``; failures become warnings."""
        if self.storage is None:
            self._warn(prepared.warnings, "HTML audit skipped - object storage not configured", prepared.tier)
            return None

        path = f"raw/{prepared.domain}/{compute_checksum(prepared.html)}.html"
        try:
            return await self.storage.upload(
                self.audit_bucket,
                path,
                prepared.html.encode("utf-8"),
                "text/html; charset=utf-8",
                upsert=False,
            )
        except StorageError as exc:
            logger.warning(f"HTML audit upload failed for {prepared.url}: {exc}")
            self._warn(prepared.warnings, f"HTML audit failed: {exc}", prepared.tier)
            return None

    async def _handle_image(self, prepared: PreparedImport, options: ImportOptions) -> None:
        medicine = prepared.medicine
        if not medicine.image_url:
            return

        medicine.original_image_url = medicine.image_url
        if not options.download_images:
            self._warn(
                prepared.warnings,
                "Image hotlinked from source - enable image download to re-host it",
                prepared.tier,
            )
            return
        if self.image_archiver is None:
            self._warn(
                prepared.warnings,
                "Image storage not configured - image remains hotlinked",
                prepared.tier,
            )
            return

        try:
            archived = await self.image_archiver.archive(medicine.image_url)
        except ImageArchiveError as exc:
            logger.warning(f"Image archive failed for {medicine.image_url}: {exc}")
            self._warn(
                prepared.warnings,
                f"Image download failed ({exc}) - keeping original URL",
                prepared.tier,
            )
            return

        medicine.image_url = archived.public_url
        medicine.thumbnail_url = archived.public_url
        medicine.image_hash = archived.image_hash

    def _warn(self, warnings: List[str], message: str, tier: TrustTier) -> None:
        warnings.append(self.domain_policy.annotate(message, tier))
