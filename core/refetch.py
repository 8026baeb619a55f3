"""Refresh a stored medicine from its original source page."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from core.import_orchestrator import MedicineImporter, source_checksum
from core.types import ImportOptions, MedicineID, MedicineStore
from utils.error_handling import ROBOTS_DISALLOWED, RobotsDisallowedError

logger = logging.getLogger(__name__)

SOURCE_FIELDS = (
    "price",
    "original_price",
    "description",
    "image_url",
    "composition",
    "composition_key",
    "composition_family_key",
)

MANUAL_FIELDS = (
    "name",
    "brand",
    "manufacturer",
    "dosage",
    "pack_size",
    "requires_prescription",
)


@dataclass
class RefetchResult:
    success: bool
    message: str
    updated_fields: List[str] = field(default_factory=list)
    audit_url: Optional[str] = None
    status_code: int = 200

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "updatedFields": list(self.updated_fields),
        }
        if self.audit_url:
            payload["auditUrl"] = self.audit_url
        return payload


class MedicineRefetcher:
    """
    Re-parses ``external_source_url`` of an existing medicine.

    Source-derived fields are always refreshed. Fields an operator may have
    edited by hand are only replaced with ``overwrite_manual_changes``.
    """

    def __init__(self, importer: MedicineImporter, store: MedicineStore):
        self.importer = importer
        self.store = store

    async def refetch(
        self,
        medicine_id: MedicineID,
        overwrite_manual_changes: bool = False,
        store_html_audit: bool = False,
    ) -> RefetchResult:
        existing = await self.store.get_medicine(medicine_id)
        if existing is None:
            return RefetchResult(False, "Medicine not found", status_code=404)

        source_url = existing.get("external_source_url")
        if not source_url:
            return RefetchResult(False, "No source URL available for re-fetching", status_code=400)

        logger.info(f"Re-fetching medicine {medicine_id} from {source_url}")
        try:
            prepared = await self.importer.prepare(
                source_url, ImportOptions(store_html_audit=store_html_audit)
            )
        except RobotsDisallowedError:
            return RefetchResult(False, ROBOTS_DISALLOWED)

        draft = prepared.medicine
        candidates = SOURCE_FIELDS + (MANUAL_FIELDS if overwrite_manual_changes else ())

        changes: Dict[str, Any] = {}
        updated_fields: List[str] = []
        for name in candidates:
            value = getattr(draft, name)
            if value is None:
                continue
            changes[name] = value
            if existing.get(name) != value:
                updated_fields.append(name)

        checksum = source_checksum(draft)
        if existing.get("source_checksum") != checksum:
            updated_fields.append("source_checksum")
        changes["source_checksum"] = checksum
        changes["source_last_fetched"] = datetime.now(timezone.utc)

        await self.store.update_medicine(medicine_id, changes)

        audit_url = None
        if store_html_audit:
            audit_url = await self.importer.store_html_audit(prepared)

        message = (
            f"Updated {len(updated_fields)} fields successfully"
            if updated_fields
            else "No changes detected - medicine is up to date"
        )
        logger.info(f"Refetch of {medicine_id}: {message}")
        return RefetchResult(True, message, updated_fields, audit_url)
