"""Fill empty fields of an existing medicine from a freshly parsed draft."""

import logging
from typing import Any, Dict, Iterable, List, Optional

from core.composition import composition_keys
from core.types import MedicineData, MedicineID, MedicineRecord, MedicineStore

logger = logging.getLogger(__name__)

DEFAULT_ENRICH_FIELDS = ("composition", "description")

ENRICHABLE_FIELDS = frozenset(
    {
        "brand",
        "generic_name",
        "manufacturer",
        "description",
        "dosage",
        "pack_size",
        "strength",
        "dosage_form",
        "uses",
        "side_effects",
        "composition",
        "image_url",
    }
)


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def plan_enrichment(
    existing: MedicineRecord,
    draft: MedicineData,
    fields: Iterable[str] = DEFAULT_ENRICH_FIELDS,
) -> Dict[str, Any]:
    """Changes that fill empty columns of ``existing``; non-empty values are never replaced."""
    changes: Dict[str, Any] = {}
    for name in fields:
        if name not in ENRICHABLE_FIELDS:
            raise ValueError(f"Field cannot be enriched: {name}")
        value = getattr(draft, name, None)
        if _is_empty(existing.get(name)) and not _is_empty(value):
            changes[name] = value

    if "composition" in changes:
        keys = composition_keys(changes["composition"])
        if keys:
            changes["composition_key"] = keys[0]
            if keys[1]:
                changes["composition_family_key"] = keys[1]
    return changes


class MedicineEnricher:
    def __init__(self, store: MedicineStore):
        self.store = store

    async def enrich(
        self,
        medicine_id: MedicineID,
        draft: MedicineData,
        fields: Optional[Iterable[str]] = None,
    ) -> Optional[List[str]]:
        """Apply :func:`plan_enrichment`; returns updated columns or None for an unknown ID."""
        existing = await self.store.get_medicine(medicine_id)
        if existing is None:
            logger.warning(f"Cannot enrich unknown medicine {medicine_id}")
            return None

        changes = plan_enrichment(existing, draft, fields or DEFAULT_ENRICH_FIELDS)
        if not changes:
            return []

        await self.store.update_medicine(medicine_id, changes)
        logger.info(f"Enriched medicine {medicine_id}: {sorted(changes)}")
        return sorted(changes)
