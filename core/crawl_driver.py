"""
Popular-medicine crawl for 1mg.

Discovery first tries a Firecrawl crawl job and falls back to a page-by-page
breadth-first walk over listing pages. Discovered product URLs are then
imported one at a time with a fixed delay, bounded retries for transient
errors, and enrichment of duplicates that already exist.
"""

import asyncio
import logging
import re
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, Iterable, List, Optional, Set
from urllib.parse import urljoin

from core.domain_policy import host_matches
from core.enrichment import MedicineEnricher
from core.exponential_backoff import ExponentialBackoff
from core.import_orchestrator import MedicineImporter
from core.types import CrawlOptions, CrawlResult, ImportOptions, ImportResult, MedicineStore
from network.firecrawl_client import FirecrawlClient, extract_page_contents
from network.page_fetcher import PageFetcher
from utils.error_handling import CrawlDiscoveryError, FetchError, ImporterError
from utils.helpers import extract_domain

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]

SITE_ROOT = "https://www.1mg.com"
SITE_DOMAIN = "1mg.com"

BASE_SEED_URLS = (
    "https://www.1mg.com/drugs-all-medicines",
    "https://www.1mg.com/categories",
    "https://www.1mg.com/drugs-bestsellers",
)

CATEGORY_SEED_URLS = {
    "bestsellers": "https://www.1mg.com/drugs-bestsellers",
    "popular": "https://www.1mg.com/drugs-all-medicines",
    "all": "https://www.1mg.com/drugs-all-medicines",
}

OTC_SEED_URLS = (
    "https://www.1mg.com/categories/otc",
    "https://www.1mg.com/otc-bestsellers",
)

MAX_LINKS_PER_PAGE = 10

_URL_CHARS = r"[^\"'\s<>()\[\]]+"

DRUG_URL_PATTERNS = (
    re.compile(r"https://www\.1mg\.com/drugs/" + _URL_CHARS),
    re.compile(r"/drugs/" + _URL_CHARS),
)

OTC_URL_PATTERNS = (
    re.compile(r"https://www\.1mg\.com/otc/" + _URL_CHARS),
    re.compile(r"/otc/" + _URL_CHARS),
)

LINK_PATTERNS = (
    re.compile(r"href=[\"']([^\"']+)[\"']"),
    re.compile(r"\]\((https?://[^)\s]+)\)"),
)

LISTING_HINT = re.compile(r"[?&]page=\d+|/categories/|drugs-all-medicines|drugs-bestsellers")

CRAWL_INCLUDE_PATHS = ["/drugs/.*", "/drugs-.*", "/categories/.*"]

CRAWL_IMPORT_OPTIONS = ImportOptions(
    download_images=False,
    respect_robots=True,
    store_html_audit=False,
    skip_duplicate_check=False,
)


def _absolute(url: str) -> str:
    url = url.rstrip(".,;:'")
    return url if url.startswith("http") else f"{SITE_ROOT}{url}"


def extract_product_urls(content: str, include_otc: bool = True) -> List[str]:
    """Product page URLs in ``content`` (HTML or markdown), insertion-ordered and unique."""
    patterns = DRUG_URL_PATTERNS + (OTC_URL_PATTERNS if include_otc else ())
    found: Dict[str, None] = {}
    for pattern in patterns:
        for match in pattern.findall(content):
            url = _absolute(match)
            if "#" in url or "?" in url:
                continue
            found.setdefault(url, None)
    return list(found)


def extract_listing_links(content: str, page_url: str, limit: int = MAX_LINKS_PER_PAGE) -> List[str]:
    """Pagination and category links on the same site, at most ``limit``."""
    links: Dict[str, None] = {}
    for pattern in LINK_PATTERNS:
        for match in pattern.findall(content):
            url = urljoin(page_url, match.replace("&amp;", "&")).split("#", 1)[0]
            if not LISTING_HINT.search(url) or url == page_url:
                continue
            if not host_matches(extract_domain(url), SITE_DOMAIN):
                continue
            if "/drugs/" in url or "/otc/" in url:
                continue
            links.setdefault(url, None)
            if len(links) >= limit:
                return list(links)
    return list(links)


def build_seed_urls(options: CrawlOptions) -> List[str]:
    seeds: Dict[str, None] = dict.fromkeys(BASE_SEED_URLS)
    for category in options.categories:
        slug = category.strip().lower()
        if not slug:
            continue
        seeds.setdefault(CATEGORY_SEED_URLS.get(slug, f"{SITE_ROOT}/categories/{slug}"), None)
    if options.include_otc:
        for url in OTC_SEED_URLS:
            seeds.setdefault(url, None)
    for url in options.extra_seed_urls:
        if url and url.strip():
            seeds.setdefault(url.strip(), None)
    return list(seeds)


class PopularMedicineCrawler:
    def __init__(
        self,
        importer: MedicineImporter,
        fetcher: PageFetcher,
        store: MedicineStore,
        firecrawl: Optional[FirecrawlClient] = None,
        backoff: Optional[ExponentialBackoff] = None,
        request_delay: float = 1.0,
        poll_interval: float = 5.0,
        poll_attempts: int = 24,
        sleep: Sleep = asyncio.sleep,
    ):
        self.importer = importer
        self.fetcher = fetcher
        self.enricher = MedicineEnricher(store)
        self.firecrawl = firecrawl
        self.backoff = backoff or ExponentialBackoff(sleep=sleep)
        self.request_delay = request_delay
        self.poll_interval = poll_interval
        self.poll_attempts = poll_attempts
        self._sleep = sleep

    def _firecrawl_ready(self, options: CrawlOptions) -> bool:
        if not options.use_firecrawl:
            return False
        if self.firecrawl is None or not self.firecrawl.is_configured:
            logger.warning("Firecrawl API key not configured, falling back to direct scraping")
            return False
        return True

    async def crawl(self, options: Optional[CrawlOptions] = None) -> CrawlResult:
        options = options or CrawlOptions()
        result = CrawlResult(categories=list(options.categories))
        logger.info(
            f"Starting crawl: max_products={options.max_products}, "
            f"categories={options.categories}, dry_run={options.dry_run}"
        )

        urls = await self.discover(options, result.errors)
        result.product_urls = urls
        result.total_products_found = len(urls)
        logger.info(f"Total product URLs to process: {len(urls)}")

        if options.dry_run:
            logger.info("Dry run - not importing products")
            result.success = True
            return result

        await self.import_urls(urls, result)
        result.success = True
        logger.info(
            f"Crawl finished: imported={result.imported_count}, "
            f"skipped={result.skipped_count}, failed={result.failed_count}"
        )
        return result

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def discover(self, options: CrawlOptions, errors: List[str]) -> List[str]:
        found: Dict[str, None] = {}

        if self._firecrawl_ready(options):
            for url in await self.discover_with_crawl_job(options, errors):
                found.setdefault(url, None)

        if len(found) < options.max_products:
            for url in await self.discover_breadth_first(options, errors, set(found)):
                found.setdefault(url, None)

        return list(found)[: options.max_products]

    async def discover_with_crawl_job(self, options: CrawlOptions, errors: List[str]) -> List[str]:
        if self.firecrawl is None:
            return []
        try:
            status = await self._run_crawl_job(options)
        except CrawlDiscoveryError as exc:
            logger.warning(f"Bulk crawl discovery failed: {exc}")
            errors.append(str(exc))
            return []

        urls: Dict[str, None] = {}
        for content in extract_page_contents(status):
            for url in extract_product_urls(content, options.include_otc):
                urls.setdefault(url, None)
        logger.info(f"Crawl job found {len(urls)} product URLs")
        return list(urls)

    async def _run_crawl_job(self, options: CrawlOptions) -> Dict[str, Any]:
        """Start a crawl job and poll it; returns the completed status payload."""
        root = BASE_SEED_URLS[0]
        include_paths = list(CRAWL_INCLUDE_PATHS)
        if options.include_otc:
            include_paths.append("/otc/.*")

        job_id = await asyncio.to_thread(
            self.firecrawl.start_crawl,
            root,
            limit=options.max_discovery_pages,
            include_paths=include_paths,
        )
        if not job_id:
            raise CrawlDiscoveryError(f"Bulk crawl could not be started for {root}", {"url": root})

        for attempt in range(1, self.poll_attempts + 1):
            await self._sleep(self.poll_interval)
            status = await asyncio.to_thread(self.firecrawl.get_crawl_status, job_id) or {}
            state = status.get("status")
            logger.debug(f"Crawl job {job_id} poll {attempt}/{self.poll_attempts}: {state}")

            if state == "completed":
                return status
            if state in ("failed", "cancelled"):
                raise CrawlDiscoveryError(f"Bulk crawl {job_id} {state}", {"job_id": job_id})

        raise CrawlDiscoveryError(
            f"Bulk crawl {job_id} did not complete after {self.poll_attempts} polls",
            {"job_id": job_id},
        )

    async def discover_breadth_first(
        self,
        options: CrawlOptions,
        errors: List[str],
        already_found: Optional[Iterable[str]] = None,
    ) -> List[str]:
        found: Dict[str, None] = dict.fromkeys(already_found or ())
        new_urls: List[str] = []
        queue: Deque[str] = deque(build_seed_urls(options))
        queued: Set[str] = set(queue)
        visited: Set[str] = set()
        use_firecrawl = self._firecrawl_ready(options)

        while queue and len(visited) < options.max_discovery_pages:
            if len(found) >= options.max_products:
                break
            page_url = queue.popleft()
            if page_url in visited:
                continue
            if visited:
                await self._sleep(self.request_delay)
            visited.add(page_url)

            logger.info(f"Discovering products from: {page_url}")
            try:
                content = await self._fetch_listing(page_url, use_firecrawl)
            except FetchError as exc:
                logger.warning(f"Discovery failed for {page_url}: {exc}")
                errors.append(f"Discovery failed for {page_url}: {exc}")
                continue

            for url in extract_product_urls(content, options.include_otc):
                if url not in found:
                    found[url] = None
                    new_urls.append(url)
            logger.info(f"Found {len(found)} unique product URLs so far")

            if options.include_pagination:
                for link in extract_listing_links(content, page_url):
                    if link not in visited and link not in queued:
                        queue.append(link)
                        queued.add(link)

        return new_urls

    async def _fetch_listing(self, page_url: str, use_firecrawl: bool) -> str:
        if use_firecrawl and self.firecrawl is not None:
            markdown = await asyncio.to_thread(self.firecrawl.scrape_markdown, page_url)
            if markdown:
                return markdown
            logger.info(f"Firecrawl returned nothing for {page_url}, fetching directly")
        return await self.fetcher.fetch_html(page_url)

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    async def import_urls(
        self,
        urls: List[str],
        result: Optional[CrawlResult] = None,
        options: Optional[ImportOptions] = None,
    ) -> CrawlResult:
        """Import ``urls`` sequentially and accumulate outcome counters into ``result``."""
        if result is None:
            result = CrawlResult(total_products_found=len(urls), product_urls=list(urls))

        for index, url in enumerate(urls):
            if index:
                await self._sleep(self.request_delay)
            logger.info(f"Importing product {index + 1}/{len(urls)}: {url}")

            try:
                outcome = await self._import_with_retry(url, options or CRAWL_IMPORT_OPTIONS)
            except ImporterError as exc:
                result.failed_count += 1
                result.errors.append(f"Import failed for {url}: {exc}")
                logger.warning(f"Import failed for {url}: {exc}")
                continue
            except Exception as exc:
                result.failed_count += 1
                result.errors.append(f"Import error for {url}: {exc}")
                logger.exception(f"Unexpected error importing {url}")
                continue

            if not outcome.success:
                result.failed_count += 1
                result.errors.append(f"Import failed for {url}: {outcome.error or 'Unknown error'}")
            elif outcome.duplicate:
                result.skipped_count += 1
                logger.info(f"Skipped duplicate: {url} ({outcome.dedupe_reason})")
                await self._enrich_duplicate(outcome)
            else:
                result.imported_count += 1
                name = outcome.medicine_data.name if outcome.medicine_data else "Unknown"
                logger.info(f"Successfully imported: {name}")

        result.success = True
        return result

    async def _import_with_retry(self, url: str, options: ImportOptions) -> ImportResult:
        attempt = 0
        while True:
            attempt += 1
            try:
                outcome = await self.importer.import_from_url(url, options)
            except Exception as exc:
                if not self.backoff.should_retry(attempt, exc):
                    raise
                self.backoff.track_failure(url, exc)
                await self.backoff.wait_with_backoff(url, attempt - 1, exc)
                continue
            self.backoff.track_success(url)
            return outcome

    async def _enrich_duplicate(self, outcome: ImportResult) -> None:
        if not outcome.medicine_id or outcome.medicine_data is None:
            return
        try:
            updated = await self.enricher.enrich(outcome.medicine_id, outcome.medicine_data)
        except ImporterError as exc:
            logger.warning(f"Enrichment of {outcome.medicine_id} failed: {exc}")
            return
        if updated:
            logger.info(f"Enriched existing medicine {outcome.medicine_id}: {updated}")
