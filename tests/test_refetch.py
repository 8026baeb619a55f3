"""Tests for refreshing stored medicines from their source pages."""

import json

import pytest

from core.domain_policy import DomainPolicy
from core.duplicate_resolver import DuplicateResolver
from core.import_orchestrator import MedicineImporter
from core.refetch import MedicineRefetcher
from core.robots_checker import RobotsTxtChecker
from network.page_fetcher import PageFetcher
from parsers.product_parser import ProductParser

PRODUCT_URL = "https://www.1mg.com/drugs/dolo-650mg-tablet-74467"


def _page(price: str) -> str:
    product = {
        "@type": "Drug",
        "name": "Dolo 650mg Strip Of 15 Tablets",
        "manufacturer": {"name": "Micro Labs Ltd"},
        "activeIngredient": "Paracetamol (650mg)",
        "offers": {"price": price},
    }
    return (
        '<html><head><script type="application/ld+json">'
        + json.dumps(product)
        + "</script></head><body></body></html>"
    )


def _refetcher(client, store, storage=None) -> MedicineRefetcher:
    fetcher = PageFetcher(client)
    importer = MedicineImporter(
        fetcher=fetcher,
        robots_checker=RobotsTxtChecker(client),
        parser=ProductParser(),
        store=store,
        resolver=DuplicateResolver(store),
        domain_policy=DomainPolicy(),
        storage=storage,
    )
    return MedicineRefetcher(importer, store)


@pytest.mark.asyncio
async def test_unknown_medicine_and_missing_source(make_client, store) -> None:
    manual_id = store.add(name="Hand-entered syrup")
    async with make_client({}) as client:
        refetcher = _refetcher(client, store)
        missing = await refetcher.refetch("does-not-exist")
        no_source = await refetcher.refetch(manual_id)

    assert (missing.success, missing.status_code, missing.message) == (False, 404, "Medicine not found")
    assert no_source.status_code == 400
    assert no_source.message == "No source URL available for re-fetching"
    assert store.updates == []


@pytest.mark.asyncio
async def test_robots_denial_leaves_record_untouched(make_client, store) -> None:
    medicine_id = store.add(name="Dolo", external_source_url=PRODUCT_URL)
    routes = {
        PRODUCT_URL: _page("30.91"),
        "https://www.1mg.com/robots.txt": "User-agent: *\nDisallow: /drugs/\n",
    }
    async with make_client(routes) as client:
        result = await _refetcher(client, store).refetch(medicine_id)

    assert result.success is False
    assert result.message == "disallowed_by_robots"
    assert result.to_dict() == {"success": False, "message": "disallowed_by_robots", "updatedFields": []}
    assert store.updates == []


@pytest.mark.asyncio
async def test_source_fields_refresh_but_manual_edits_survive(make_client, store) -> None:
    routes = {PRODUCT_URL: _page("30.91")}
    async with make_client(routes) as client:
        refetcher = _refetcher(client, store)
        created = await refetcher.importer.import_from_url(PRODUCT_URL)
        store.records[created.medicine_id]["name"] = "Dolo 650 (edited)"

        routes[PRODUCT_URL] = _page("32.50")
        refreshed = await refetcher.refetch(created.medicine_id)
        unchanged = await refetcher.refetch(created.medicine_id)

    record = store.records[created.medicine_id]
    assert refreshed.success is True
    assert refreshed.updated_fields == ["price", "original_price", "source_checksum"]
    assert refreshed.message == "Updated 3 fields successfully"
    assert record["price"] == record["original_price"] == 32.5
    assert record["name"] == "Dolo 650 (edited)"
    assert "source_last_fetched" in store.updates[-1][1]

    assert unchanged.updated_fields == []
    assert unchanged.message == "No changes detected - medicine is up to date"


@pytest.mark.asyncio
async def test_overwrite_manual_changes_restores_source_values(make_client, store) -> None:
    async with make_client({PRODUCT_URL: _page("30.91")}) as client:
        refetcher = _refetcher(client, store)
        created = await refetcher.importer.import_from_url(PRODUCT_URL)
        store.records[created.medicine_id]["name"] = "Dolo 650 (edited)"

        result = await refetcher.refetch(created.medicine_id, overwrite_manual_changes=True)

    assert result.updated_fields == ["name"]
    assert store.records[created.medicine_id]["name"] == "Dolo 650mg Strip Of 15 Tablets"


@pytest.mark.asyncio
async def test_refetch_can_store_html_audit(make_client, store, storage) -> None:
    medicine_id = store.add(name="Dolo", external_source_url=PRODUCT_URL)
    async with make_client({PRODUCT_URL: _page("30.91")}) as client:
        result = await _refetcher(client, store, storage).refetch(medicine_id, store_html_audit=True)

    assert result.audit_url.startswith("https://storage.test/sources/raw/www.1mg.com/")
    assert result.to_dict()["auditUrl"] == result.audit_url
    assert storage.uploads[0][2] is False
