import pytest

from core.enrichment import MedicineEnricher, plan_enrichment
from core.types import MedicineData


def test_plan_fills_only_empty_fields() -> None:
    existing = {"composition": "  ", "description": "Trusted copy", "uses": None}
    draft = MedicineData(
        name="Calpol 500",
        composition="Paracetamol (500mg)",
        description="Scraped copy",
        uses="Fever",
    )

    changes = plan_enrichment(existing, draft, ["composition", "description", "uses"])

    assert changes["composition"] == "Paracetamol (500mg)"
    assert changes["uses"] == "Fever"
    assert "description" not in changes
    assert changes["composition_key"]


def test_plan_rejects_unknown_fields() -> None:
    with pytest.raises(ValueError, match="price"):
        plan_enrichment({}, MedicineData(name="x", price=10.0), ["price"])


@pytest.mark.asyncio
async def test_enrich_updates_store(store) -> None:
    medicine_id = store.add(name="Calpol 500", description=None, composition="Paracetamol (500mg)")
    enricher = MedicineEnricher(store)

    updated = await enricher.enrich(medicine_id, MedicineData(name="Calpol", description="Pain relief"))
    again = await enricher.enrich(medicine_id, MedicineData(name="Calpol", description="Other text"))

    assert updated == ["description"]
    assert again == []
    assert store.records[medicine_id]["description"] == "Pain relief"
    assert len(store.updates) == 1


@pytest.mark.asyncio
async def test_enrich_unknown_medicine(store) -> None:
    assert await MedicineEnricher(store).enrich("missing", MedicineData(name="x")) is None
