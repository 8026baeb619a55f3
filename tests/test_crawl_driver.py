"""Tests for 1mg product discovery and the sequential import phase."""

from typing import Any, Dict, List, Optional, Union

import pytest

from core.crawl_driver import (
    PopularMedicineCrawler,
    build_seed_urls,
    extract_listing_links,
    extract_product_urls,
)
from core.exponential_backoff import ExponentialBackoff
from core.types import CrawlOptions, ImportMode, ImportOptions, ImportResult, MedicineData
from network.page_fetcher import PageFetcher
from utils.error_handling import FetchError

ALL_MEDICINES = "https://www.1mg.com/drugs-all-medicines"
CATEGORIES = "https://www.1mg.com/categories"
BESTSELLERS = "https://www.1mg.com/drugs-bestsellers"

DOLO = "https://www.1mg.com/drugs/dolo-650-tablet-74467"
CROCIN = "https://www.1mg.com/drugs/crocin-advance-tablet-600468"
AUGMENTIN = "https://www.1mg.com/drugs/augmentin-625-duo-tablet-138629"
VOLINI = "https://www.1mg.com/otc/volini-pain-relief-gel-otc123"

Outcome = Union[ImportResult, BaseException]


class _ScriptedImporter:
    def __init__(self, outcomes: Dict[str, List[Outcome]]) -> None:
        self.outcomes = outcomes
        self.calls: List[str] = []
        self.options: List[Optional[ImportOptions]] = []

    async def import_from_url(self, url: str, options: Optional[ImportOptions] = None) -> ImportResult:
        self.calls.append(url)
        self.options.append(options)
        outcome = self.outcomes[url].pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class _FakeFirecrawl:
    is_configured = True

    def __init__(self, statuses: List[Optional[Dict[str, Any]]], job_id: Optional[str] = "job-1") -> None:
        self.statuses = statuses
        self.job_id = job_id
        self.crawl_requests: List[Dict[str, Any]] = []
        self.scraped: List[str] = []

    def start_crawl(self, url: str, *, limit: int, include_paths: Optional[List[str]] = None) -> Optional[str]:
        self.crawl_requests.append({"url": url, "limit": limit, "include_paths": include_paths})
        return self.job_id

    def get_crawl_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        return self.statuses.pop(0)

    def scrape_markdown(self, url: str) -> Optional[str]:
        self.scraped.append(url)
        return None


def _created(url: str) -> ImportResult:
    return ImportResult(
        success=True,
        mode=ImportMode.CREATED,
        medicine_id=f"id-{url.rsplit('-', 1)[-1]}",
        medicine_data=MedicineData(name=url.rsplit("/", 1)[-1]),
    )


def _listing(*hrefs: str) -> str:
    return "<html><body>" + "".join(f'<a href="{href}">link</a>' for href in hrefs) + "</body></html>"


def test_extract_product_urls_from_html_and_markdown() -> None:
    content = (
        '<a href="/drugs/dolo-650-tablet-74467">Dolo</a>'
        f"[Volini]({VOLINI}) "
        f"See {CROCIN}. "
        '<a href="https://www.1mg.com/drugs/dolo-650-tablet-74467?ref=home">again</a>'
        '<a href="/drugs/augmentin-625-duo-tablet-138629#reviews">reviews</a>'
    )

    assert extract_product_urls(content) == [CROCIN, DOLO, VOLINI]
    assert extract_product_urls(content, include_otc=False) == [CROCIN, DOLO]


def test_extract_listing_links_keeps_same_site_listings() -> None:
    content = _listing(
        "/drugs-all-medicines?page=2",
        "/drugs-all-medicines",
        "/categories/pain-relief",
        "https://other.test/categories/x",
        "/drugs/dolo-650-tablet-74467",
        "/about-us",
    )

    links = extract_listing_links(content, ALL_MEDICINES)

    assert links == [
        "https://www.1mg.com/drugs-all-medicines?page=2",
        "https://www.1mg.com/categories/pain-relief",
    ]
    assert extract_listing_links(content, ALL_MEDICINES, limit=1) == links[:1]


def test_build_seed_urls_maps_categories() -> None:
    options = CrawlOptions(
        categories=["bestsellers", "Vitamins", " "],
        include_otc=False,
        extra_seed_urls=[" https://www.1mg.com/brands/dolo "],
    )

    assert build_seed_urls(options) == [
        ALL_MEDICINES,
        CATEGORIES,
        BESTSELLERS,
        "https://www.1mg.com/categories/vitamins",
        "https://www.1mg.com/brands/dolo",
    ]
    assert "https://www.1mg.com/categories/otc" in build_seed_urls(CrawlOptions())


@pytest.mark.asyncio
async def test_dry_run_discovers_without_importing(make_client, store, sleep) -> None:
    routes = {
        ALL_MEDICINES: _listing("/drugs/dolo-650-tablet-74467", "/drugs/crocin-advance-tablet-600468"),
        CATEGORIES: _listing("/drugs/crocin-advance-tablet-600468", "/drugs/augmentin-625-duo-tablet-138629"),
        BESTSELLERS: _listing(),
    }
    importer = _ScriptedImporter({})
    async with make_client(routes) as client:
        crawler = PopularMedicineCrawler(importer, PageFetcher(client), store, sleep=sleep)
        result = await crawler.crawl(
            CrawlOptions(dry_run=True, use_firecrawl=False, include_otc=False, include_pagination=False)
        )

    assert result.success is True
    assert result.product_urls == [DOLO, CROCIN, AUGMENTIN]
    assert result.total_products_found == 3
    assert (result.imported_count, result.skipped_count, result.failed_count) == (0, 0, 0)
    assert importer.calls == []
    assert sleep.calls == [1.0, 1.0]


@pytest.mark.asyncio
async def test_discovery_follows_pagination_and_caps_results(make_client, store, sleep) -> None:
    routes = {
        ALL_MEDICINES: _listing("/drugs-all-medicines?page=2"),
        "https://www.1mg.com/drugs-all-medicines?page=2": _listing(
            "/drugs/dolo-650-tablet-74467", "/drugs/crocin-advance-tablet-600468"
        ),
    }
    async with make_client(routes) as client:
        crawler = PopularMedicineCrawler(_ScriptedImporter({}), PageFetcher(client), store, sleep=sleep)
        result = await crawler.crawl(
            CrawlOptions(max_products=1, dry_run=True, use_firecrawl=False, include_otc=False)
        )

    assert result.product_urls == [DOLO]
    assert any(error.startswith(f"Discovery failed for {CATEGORIES}") for error in result.errors)


@pytest.mark.asyncio
async def test_discovery_stops_at_page_limit(make_client, store, sleep) -> None:
    requests: List[str] = []
    async with make_client({}, requests) as client:
        crawler = PopularMedicineCrawler(_ScriptedImporter({}), PageFetcher(client), store, sleep=sleep)
        result = await crawler.crawl(
            CrawlOptions(max_discovery_pages=2, dry_run=True, use_firecrawl=False)
        )

    assert requests == [ALL_MEDICINES, CATEGORIES]
    assert result.product_urls == []
    assert len(result.errors) == 2


@pytest.mark.asyncio
async def test_firecrawl_job_is_polled_until_complete(store, sleep) -> None:
    firecrawl = _FakeFirecrawl(
        [
            {"status": "scraping"},
            {"status": "completed", "data": [{"markdown": f"[Dolo]({DOLO}) [Volini]({VOLINI})"}]},
        ]
    )
    crawler = PopularMedicineCrawler(
        _ScriptedImporter({}), None, store, firecrawl=firecrawl, poll_interval=5.0, sleep=sleep
    )

    result = await crawler.crawl(CrawlOptions(max_products=2, dry_run=True))

    assert result.product_urls == [DOLO, VOLINI]
    assert sleep.calls == [5.0, 5.0]
    assert firecrawl.crawl_requests[0]["url"] == ALL_MEDICINES
    assert "/otc/.*" in firecrawl.crawl_requests[0]["include_paths"]


@pytest.mark.asyncio
async def test_failed_firecrawl_job_falls_back_to_direct_fetch(make_client, store, sleep) -> None:
    firecrawl = _FakeFirecrawl([{"status": "failed"}])
    routes = {ALL_MEDICINES: _listing("/drugs/dolo-650-tablet-74467")}
    async with make_client(routes) as client:
        crawler = PopularMedicineCrawler(
            _ScriptedImporter({}), PageFetcher(client), store, firecrawl=firecrawl, sleep=sleep
        )
        result = await crawler.crawl(
            CrawlOptions(max_products=1, dry_run=True, include_otc=False)
        )

    assert result.product_urls == [DOLO]
    assert "Bulk crawl job-1 failed" in result.errors
    assert firecrawl.scraped == [ALL_MEDICINES]


@pytest.mark.asyncio
async def test_firecrawl_polling_is_bounded(store, sleep) -> None:
    firecrawl = _FakeFirecrawl([{"status": "scraping"}] * 3)
    crawler = PopularMedicineCrawler(
        _ScriptedImporter({}), None, store, firecrawl=firecrawl, poll_attempts=3, sleep=sleep
    )

    errors: List[str] = []
    urls = await crawler.discover_with_crawl_job(CrawlOptions(), errors)

    assert urls == []
    assert errors == ["Bulk crawl job-1 did not complete after 3 polls"]
    assert len(sleep.calls) == 3


@pytest.mark.asyncio
async def test_import_phase_counts_every_outcome(store, sleep) -> None:
    existing_id = store.add(name="Crocin Advance", description=None)
    duplicate = ImportResult(
        success=True,
        mode=ImportMode.UPDATED,
        medicine_id=existing_id,
        medicine_data=MedicineData(name="Crocin Advance", description="Fast pain relief"),
        dedupe_reason="exact match on composition, manufacturer, and pack size",
    )
    importer = _ScriptedImporter(
        {
            DOLO: [_created(DOLO)],
            CROCIN: [duplicate],
            AUGMENTIN: [ImportResult.failed("disallowed_by_robots")],
            VOLINI: [FetchError("Failed to fetch page: 404", url=VOLINI, status_code=404)],
            "https://www.1mg.com/drugs/broken-1": [RuntimeError("parser exploded")],
        }
    )
    crawler = PopularMedicineCrawler(importer, None, store, request_delay=0.5, sleep=sleep)
    urls = list(importer.outcomes)

    result = await crawler.import_urls(urls)

    assert result.success is True
    assert result.total_products_found == 5
    assert (result.imported_count, result.skipped_count, result.failed_count) == (1, 1, 3)
    assert result.processed_count == 5
    assert result.errors == [
        f"Import failed for {AUGMENTIN}: disallowed_by_robots",
        f"Import failed for {VOLINI}: Failed to fetch page: 404",
        "Import error for https://www.1mg.com/drugs/broken-1: parser exploded",
    ]
    assert store.records[existing_id]["description"] == "Fast pain relief"
    assert sleep.calls == [0.5] * 4


@pytest.mark.asyncio
async def test_transient_failures_are_retried_with_backoff(store, sleep) -> None:
    busy = FetchError("Failed to fetch page: 503", url=DOLO, status_code=503)
    importer = _ScriptedImporter({DOLO: [busy, busy, _created(DOLO)]})
    backoff = ExponentialBackoff({"jitter": False}, sleep=sleep)
    crawler = PopularMedicineCrawler(importer, None, store, backoff=backoff, sleep=sleep)

    result = await crawler.import_urls([DOLO])

    assert result.imported_count == 1
    assert importer.calls == [DOLO, DOLO, DOLO]
    assert sleep.calls == [2.0, 4.0]
    assert backoff.get_retry_statistics(DOLO)["failure_types"] == ["http_5xx", "http_5xx"]


@pytest.mark.asyncio
async def test_retries_stop_after_max_attempts(store, sleep) -> None:
    busy = FetchError("Failed to fetch page: 503", url=DOLO, status_code=503)
    importer = _ScriptedImporter({DOLO: [busy, busy, busy]})
    backoff = ExponentialBackoff({"jitter": False, "max_attempts": 3}, sleep=sleep)
    crawler = PopularMedicineCrawler(importer, None, store, backoff=backoff, sleep=sleep)

    result = await crawler.import_urls([DOLO])

    assert result.failed_count == 1
    assert len(importer.calls) == 3


@pytest.mark.asyncio
async def test_bulk_options_are_passed_to_importer(store, sleep) -> None:
    importer = _ScriptedImporter({DOLO: [_created(DOLO)]})
    crawler = PopularMedicineCrawler(importer, None, store, sleep=sleep)
    options = ImportOptions(download_images=True)

    await crawler.import_urls([DOLO], options=options)

    assert importer.options == [options]
