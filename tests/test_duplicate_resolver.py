"""Tests for exact and fuzzy duplicate detection."""

from typing import Optional

import pytest

from core.composition import apply_composition_keys
from core.duplicate_resolver import (
    EXACT_MATCH_REASON,
    DuplicateResolver,
    edit_distance,
    name_similarity,
)
from core.types import DuplicateMatch, MedicineData


def _draft(
    name: str,
    composition: str,
    manufacturer: Optional[str] = None,
    pack_size: Optional[str] = None,
) -> MedicineData:
    medicine = MedicineData(
        name=name, composition=composition, manufacturer=manufacturer, pack_size=pack_size
    )
    apply_composition_keys(medicine)
    return medicine


def test_edit_distance_counts_single_edits() -> None:
    assert edit_distance("kitten", "sitting") == 3
    assert edit_distance("", "abc") == 3
    assert edit_distance("dolo", "dolo") == 0


def test_name_similarity_is_case_and_whitespace_insensitive() -> None:
    assert name_similarity("Dolo 650  Tablet", "dolo 650 tablet") == 1.0
    assert name_similarity("", "") == 1.0


def test_duplicate_match_requires_existing_id() -> None:
    with pytest.raises(ValueError):
        DuplicateMatch(is_duplicate=True)


@pytest.mark.asyncio
async def test_exact_match_on_business_key(store) -> None:
    existing_id = store.add(
        name="Crocin Advance",
        composition_key="paracetamol 500mg",
        composition_family_key="paracetamol",
        manufacturer="GSK",
        pack_size="15 tablets",
    )
    resolver = DuplicateResolver(store)

    match = await resolver.find_duplicate(
        _draft("Completely Different Name", "Paracetamol 500 mg", "GSK", "15 tablets")
    )

    assert match.is_duplicate is True
    assert match.existing_id == existing_id
    assert match.reason == EXACT_MATCH_REASON
    assert "exact match" in match.reason


@pytest.mark.asyncio
async def test_fuzzy_match_at_threshold_is_duplicate(store) -> None:
    existing_name = "a" * 100
    existing_id = store.add(name=existing_name, composition_family_key="paracetamol")
    resolver = DuplicateResolver(store)

    candidate = "a" * 80 + "b" * 20
    assert name_similarity(candidate, existing_name) == 0.8

    match = await resolver.find_duplicate(_draft(candidate, "Paracetamol 650mg"))

    assert match.is_duplicate is True
    assert match.existing_id == existing_id
    assert match.reason == "High name similarity (80%) with same composition family"


@pytest.mark.asyncio
async def test_fuzzy_match_below_threshold_is_not_duplicate(store) -> None:
    existing_name = "a" * 100
    store.add(name=existing_name, composition_family_key="paracetamol")
    resolver = DuplicateResolver(store)

    candidate = "a" * 79 + "b" * 21
    assert name_similarity(candidate, existing_name) == pytest.approx(0.79)

    match = await resolver.find_duplicate(_draft(candidate, "Paracetamol 650mg"))

    assert match.is_duplicate is False
    assert match.existing_id is None


@pytest.mark.asyncio
async def test_similar_names_in_other_family_are_not_duplicates(store) -> None:
    store.add(name="Dolo 650 Tablet", composition_family_key="ibuprofen")
    resolver = DuplicateResolver(store)

    match = await resolver.find_duplicate(_draft("Dolo 650 Tablet", "Paracetamol 650mg"))

    assert match == DuplicateMatch.none()


@pytest.mark.asyncio
async def test_no_composition_skips_lookup(store) -> None:
    store.add(name="Dolo 650 Tablet", composition_family_key="paracetamol")
    resolver = DuplicateResolver(store)

    match = await resolver.find_duplicate(MedicineData(name="Dolo 650 Tablet"))

    assert match.is_duplicate is False
