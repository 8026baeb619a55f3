"""Duplicate detection against already persisted medicines."""

import logging
import re

from core.types import DuplicateMatch, MedicineData, MedicineStore

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.8
EXACT_MATCH_REASON = "exact match on composition, manufacturer, and pack size"


def edit_distance(first: str, second: str) -> int:
    """Levenshtein distance with unit costs for insert, delete and substitute."""
    if len(first) < len(second):
        first, second = second, first
    previous = list(range(len(second) + 1))
    for i, char_a in enumerate(first, start=1):
        current = [i]
        for j, char_b in enumerate(second, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(
                min(
                    previous[j - 1] + cost,
                    previous[j] + 1,
                    current[j - 1] + 1,
                )
            )
        previous = current
    return previous[-1]


def _comparable_name(name: str) -> str:
    return re.sub(r"\s+", " ", (name or "").casefold()).strip()


def name_similarity(first: str, second: str) -> float:
    """``(longer_len - edit_distance) / longer_len``; 1.0 for two empty names."""
    first, second = _comparable_name(first), _comparable_name(second)
    longer = max(len(first), len(second))
    if longer == 0:
        return 1.0
    return (longer - edit_distance(first, second)) / longer


class DuplicateResolver:
    """Two-tier duplicate check: exact business key, then fuzzy name within a family."""

    def __init__(self, store: MedicineStore, threshold: float = SIMILARITY_THRESHOLD) -> None:
        self.store = store
        self.threshold = threshold

    async def find_duplicate(self, medicine: MedicineData) -> DuplicateMatch:
        if medicine.composition_key and medicine.manufacturer and medicine.pack_size:
            existing = await self.store.find_exact_match(
                medicine.composition_key, medicine.manufacturer, medicine.pack_size
            )
            if existing:
                logger.info(
                    "Exact duplicate of %s found for %s", existing["id"], medicine.name
                )
                return DuplicateMatch(
                    is_duplicate=True,
                    existing_id=str(existing["id"]),
                    reason=EXACT_MATCH_REASON,
                )

        if medicine.composition_family_key:
            candidates = await self.store.find_by_family(medicine.composition_family_key)
            for candidate in candidates:
                similarity = name_similarity(medicine.name, candidate.get("name") or "")
                if similarity >= self.threshold:
                    logger.info(
                        "Similar medicine %s (%.2f) found for %s",
                        candidate["id"],
                        similarity,
                        medicine.name,
                    )
                    return DuplicateMatch(
                        is_duplicate=True,
                        existing_id=str(candidate["id"]),
                        reason=(
                            f"High name similarity ({round(similarity * 100)}%) "
                            "with same composition family"
                        ),
                    )

        return DuplicateMatch.none()
