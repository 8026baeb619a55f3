#!/usr/bin/env python3
"""Command line front-end for importing, crawling and refreshing medicines."""

from __future__ import annotations

import argparse
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional, Sequence

import httpx
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from core.di.container import Container, build_container
from core.refetch import RefetchResult
from core.types import CrawlOptions, CrawlResult, ImportOptions, ImportResult
from database.manager import DatabaseManager
from database.object_storage import ObjectStorage
from services.api.config import Settings, get_settings
from utils.error_handling import ImporterError
from utils.logger import log_import_step, setup_logger

console = Console()
error_console = Console(stderr=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Medicine importer")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL from settings")
    subparsers = parser.add_subparsers(dest="command", required=True)

    import_parser = subparsers.add_parser("import", help="Import product pages by URL")
    import_parser.add_argument("urls", nargs="+", help="Product page URLs")
    import_parser.add_argument("--download-images", action="store_true", help="Re-host product images")
    import_parser.add_argument("--ignore-robots", action="store_true", help="Skip the robots.txt check")
    import_parser.add_argument("--store-html-audit", action="store_true", help="Archive the fetched HTML")
    import_parser.add_argument(
        "--skip-duplicate-check", action="store_true", help="Create new records even for duplicates"
    )

    crawl_parser = subparsers.add_parser("crawl", help="Discover and import popular 1mg products")
    crawl_parser.add_argument("--max-products", type=int, default=50, help="Maximum product URLs to import")
    crawl_parser.add_argument("--max-discovery-pages", type=int, default=10, help="Listing pages to visit")
    crawl_parser.add_argument(
        "--category",
        dest="categories",
        action="append",
        default=None,
        help="Seed category (repeatable, default: bestsellers, popular)",
    )
    crawl_parser.add_argument("--no-firecrawl", action="store_true", help="Use direct fetching only")
    crawl_parser.add_argument("--no-otc", action="store_true", help="Exclude OTC product pages")
    crawl_parser.add_argument("--no-pagination", action="store_true", help="Do not follow listing pagination")
    crawl_parser.add_argument("--seed-url", dest="seed_urls", action="append", default=[], help="Extra seed page")
    crawl_parser.add_argument("--dry-run", action="store_true", help="Discover URLs without importing")

    refetch_parser = subparsers.add_parser("refetch", help="Refresh a stored medicine from its source URL")
    refetch_parser.add_argument("medicine_id", help="Medicine UUID")
    refetch_parser.add_argument(
        "--overwrite-manual-changes", action="store_true", help="Also replace hand-edited fields"
    )
    refetch_parser.add_argument("--store-html-audit", action="store_true", help="Archive the fetched HTML")

    return parser


def crawl_options_from_args(args: argparse.Namespace) -> CrawlOptions:
    options = CrawlOptions(
        max_products=args.max_products,
        max_discovery_pages=args.max_discovery_pages,
        use_firecrawl=not args.no_firecrawl,
        dry_run=args.dry_run,
        include_otc=not args.no_otc,
        include_pagination=not args.no_pagination,
        extra_seed_urls=list(args.seed_urls),
    )
    if args.categories:
        options.categories = list(args.categories)
    return options


def import_options_from_args(args: argparse.Namespace) -> ImportOptions:
    return ImportOptions(
        download_images=args.download_images,
        respect_robots=not args.ignore_robots,
        store_html_audit=args.store_html_audit,
        skip_duplicate_check=args.skip_duplicate_check,
    )


def render_import_result(url: str, result: ImportResult) -> Table:
    table = Table(title=url, box=box.SIMPLE_HEAD, show_header=False)
    table.add_column("Field", style="bold cyan", no_wrap=True)
    table.add_column("Value")

    status_style = "green" if result.success else "red"
    table.add_row("Mode", Text(result.mode.value, style=status_style))
    if result.medicine_id:
        table.add_row("Medicine ID", result.medicine_id)
    if result.medicine_data is not None:
        table.add_row("Name", result.medicine_data.name)
        table.add_row("Price", f"{result.medicine_data.price:.2f}")
        if result.medicine_data.composition:
            table.add_row("Composition", result.medicine_data.composition)
    if result.dedupe_reason:
        table.add_row("Duplicate", result.dedupe_reason)
    if result.audit_url:
        table.add_row("Audit", result.audit_url)
    if result.error:
        table.add_row("Error", Text(result.error, style="red"))
    for warning in result.warnings:
        table.add_row("Warning", Text(warning, style="yellow"))
    return table


def render_crawl_result(result: CrawlResult) -> Table:
    table = Table(title="Crawl Summary", box=box.MINIMAL_DOUBLE_HEAD, show_header=False)
    table.add_column("Metric", style="bold cyan", no_wrap=True)
    table.add_column("Value", justify="right")
    table.add_row("Categories", ", ".join(result.categories))
    table.add_row("Products found", str(result.total_products_found))
    table.add_row("Imported", Text(str(result.imported_count), style="green"))
    table.add_row("Skipped (duplicates)", str(result.skipped_count))
    table.add_row(
        "Failed", Text(str(result.failed_count), style="red" if result.failed_count else "green")
    )
    table.add_row("Errors", str(len(result.errors)))
    return table


def render_refetch_result(medicine_id: str, result: RefetchResult) -> Panel:
    lines = [result.message]
    if result.updated_fields:
        lines.append("Updated: " + ", ".join(result.updated_fields))
    if result.audit_url:
        lines.append(f"Audit: {result.audit_url}")
    return Panel(
        Text("\n".join(lines)),
        title=f"Refetch {medicine_id}",
        border_style="green" if result.success else "red",
    )


@asynccontextmanager
async def open_container(settings: Settings) -> AsyncIterator[Container]:
    """Database pool, HTTP client and storage for the lifetime of one command."""
    db = DatabaseManager(settings.database_url)
    await db.init_pool(min_size=1, max_size=2)
    client = httpx.AsyncClient(timeout=settings.request_timeout_seconds, follow_redirects=True)
    try:
        await db.ensure_schema()
        storage = ObjectStorage(
            settings.s3_endpoint,
            settings.s3_access_key,
            settings.s3_secret_key,
            public_url=settings.s3_public_url,
        )
        yield build_container(settings, client, db, storage)
    finally:
        await client.aclose()
        await db.close()


async def run_import(container: Container, urls: List[str], options: ImportOptions) -> int:
    importer = container.resolve("importer")
    failures = 0
    for url in urls:
        log_import_step("import", url)
        try:
            result = await importer.import_from_url(url, options)
        except ImporterError as exc:
            error_console.print(f"[red]Import failed for {url}: {exc}[/red]")
            failures += 1
            continue
        if not result.success:
            failures += 1
        console.print(render_import_result(url, result))
    return 1 if failures else 0


async def run_crawl(container: Container, options: CrawlOptions) -> int:
    crawler = container.resolve("crawler")
    log_import_step("crawl", details=f"max_products={options.max_products} dry_run={options.dry_run}")
    result = await crawler.crawl(options)
    console.print(render_crawl_result(result))
    if options.dry_run and result.product_urls:
        urls_table = Table(title="Discovered URLs", box=box.SIMPLE)
        urls_table.add_column("#", justify="right")
        urls_table.add_column("URL")
        for index, url in enumerate(result.product_urls, start=1):
            urls_table.add_row(str(index), url)
        console.print(urls_table)
    for error in result.errors:
        error_console.print(f"[yellow]{error}[/yellow]")
    return 0 if result.success else 1


async def run_refetch(container: Container, medicine_id: str, overwrite: bool, store_audit: bool) -> int:
    refetcher = container.resolve("refetcher")
    log_import_step("refetch", details=medicine_id)
    result = await refetcher.refetch(
        medicine_id, overwrite_manual_changes=overwrite, store_html_audit=store_audit
    )
    console.print(render_refetch_result(medicine_id, result))
    return 0 if result.success else 1


async def dispatch(args: argparse.Namespace, settings: Settings) -> int:
    async with open_container(settings) as container:
        if args.command == "import":
            return await run_import(container, args.urls, import_options_from_args(args))
        if args.command == "crawl":
            return await run_crawl(container, crawl_options_from_args(args))
        return await run_refetch(
            container, args.medicine_id, args.overwrite_manual_changes, args.store_html_audit
        )


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()

    level_name = (args.log_level or settings.log_level).upper()
    setup_logger(None, getattr(logging, level_name, logging.INFO), settings.log_file)

    try:
        return asyncio.run(dispatch(args, settings))
    except ImporterError as exc:
        error_console.print(Panel(Text(str(exc), style="red"), title="Error", border_style="red"))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
