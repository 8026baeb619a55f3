from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Set

import httpx

from core.crawl_driver import PopularMedicineCrawler
from core.domain_policy import DomainPolicy
from core.duplicate_resolver import DuplicateResolver
from core.enrichment import MedicineEnricher
from core.exponential_backoff import ExponentialBackoff
from core.image_archiver import ImageArchiver
from core.import_orchestrator import MedicineImporter
from core.refetch import MedicineRefetcher
from core.robots_checker import RobotsTxtChecker
from core.types import MedicineStore, ObjectStore
from network.firecrawl_client import FirecrawlClient
from network.page_fetcher import PageFetcher
from parsers.product_parser import ProductParser

if TYPE_CHECKING:  # pragma: no cover
    from services.api.config import Settings


class Container:
    """Provider registry; scoped providers build a fresh instance per resolve."""

    def __init__(self) -> None:
        self._providers: Dict[str, Callable[["Container"], Any]] = {}
        self._scoped: Set[str] = set()
        self._cache: Dict[str, Any] = {}

    def register(
        self, key: str, provider: Callable[["Container"], Any], *, scoped: bool = False
    ) -> None:
        self._providers[key] = provider
        self._cache.pop(key, None)
        if scoped:
            self._scoped.add(key)
        else:
            self._scoped.discard(key)

    def resolve(self, key: str) -> Any:
        if key in self._cache:
            return self._cache[key]
        provider = self._providers[key]
        instance = provider(self)
        if key not in self._scoped:
            self._cache[key] = instance
        return instance


def build_container(
    settings: "Settings",
    http_client: httpx.AsyncClient,
    store: MedicineStore,
    storage: Optional[ObjectStore] = None,
) -> Container:
    """
    Wire the import pipeline.

    Robots caches, Firecrawl request counters and retry state belong to one
    invocation, so everything holding them is registered as scoped.
    """
    container = Container()

    container.register("settings", lambda _: settings)
    container.register("http_client", lambda _: http_client)
    container.register("store", lambda _: store)
    container.register("storage", lambda _: storage)
    container.register(
        "fetcher",
        lambda c: PageFetcher(
            c.resolve("http_client"),
            user_agent=settings.importer_user_agent,
            timeout=settings.request_timeout_seconds,
            rotate_user_agent=settings.rotate_user_agent,
        ),
    )
    container.register("parser", lambda _: ProductParser())
    container.register("domain_policy", lambda _: DomainPolicy(settings.domain_allowlist))
    container.register("resolver", lambda c: DuplicateResolver(c.resolve("store")))
    container.register("enricher", lambda c: MedicineEnricher(c.resolve("store")))
    container.register(
        "image_archiver",
        lambda c: ImageArchiver(
            c.resolve("fetcher"),
            c.resolve("storage"),
            bucket=settings.image_bucket,
            max_bytes=settings.max_image_bytes,
        )
        if c.resolve("storage") is not None
        else None,
    )

    container.register(
        "robots_checker",
        lambda c: RobotsTxtChecker(
            c.resolve("http_client"),
            {
                "user_agent": settings.robots_user_agent,
                "agent_token": settings.robots_agent_token,
                "timeout_seconds": settings.request_timeout_seconds,
            },
        ),
        scoped=True,
    )
    container.register(
        "importer",
        lambda c: MedicineImporter(
            fetcher=c.resolve("fetcher"),
            robots_checker=c.resolve("robots_checker"),
            parser=c.resolve("parser"),
            store=c.resolve("store"),
            resolver=c.resolve("resolver"),
            domain_policy=c.resolve("domain_policy"),
            image_archiver=c.resolve("image_archiver"),
            storage=c.resolve("storage"),
            audit_bucket=settings.audit_bucket,
        ),
        scoped=True,
    )
    container.register(
        "firecrawl",
        lambda _: FirecrawlClient(
            {
                "api_key": settings.firecrawl_api_key,
                "api_keys": settings.firecrawl_api_keys,
                "base_url": settings.firecrawl_base_url,
                "timeout_seconds": settings.request_timeout_seconds,
                "max_requests_per_run": settings.firecrawl_max_requests,
            }
        ),
        scoped=True,
    )
    container.register(
        "backoff",
        lambda _: ExponentialBackoff(
            {
                "max_attempts": settings.import_retry_attempts,
                "base_delay_seconds": settings.import_retry_base_delay,
            }
        ),
        scoped=True,
    )
    container.register(
        "crawler",
        lambda c: PopularMedicineCrawler(
            importer=c.resolve("importer"),
            fetcher=c.resolve("fetcher"),
            store=c.resolve("store"),
            firecrawl=c.resolve("firecrawl"),
            backoff=c.resolve("backoff"),
            request_delay=settings.request_delay_seconds,
            poll_interval=settings.crawl_poll_interval_seconds,
            poll_attempts=settings.crawl_poll_attempts,
        ),
        scoped=True,
    )
    container.register(
        "refetcher",
        lambda c: MedicineRefetcher(c.resolve("importer"), c.resolve("store")),
        scoped=True,
    )

    return container
