"""Manual scraper runner for testing and debugging extractors.

Runs product URLs (or bare product ids) through the same ScraperService
the API uses, so caching, queueing and retries behave as in production.

Usage:
    python scripts/run_scraper.py https://www.myntra.com/tshirts/brand/item/12345678/buy
    python scripts/run_scraper.py --site myntra 12345678 87654321
    python scripts/run_scraper.py --site amazon B0CX23V2ZK --json
    python scripts/run_scraper.py --site myntra 12345678 --export
"""

import argparse
import asyncio
import json
from typing import List, Optional

from product_scraper.config import settings
from product_scraper.core.logging_config import configure_logging
from product_scraper.scrapers.base import FetchResult
from product_scraper.scrapers.scraper_service import build_scraper_service
from product_scraper.services.export_service import ExportService


async def run_scraper(site: Optional[str], targets: List[str], as_json: bool = False, export: bool = False):
    """Scrape each target in turn and display the results.

    Args:
        site: Site id (e.g., "myntra"), None for DEFAULT_SITE
        targets: Product URLs or ids
        as_json: Print the raw response envelope instead of a summary
        export: Regenerate products.json/products.csv afterwards
    """
    service = build_scraper_service(settings)
    service.scheduler.start()
    await service.cache.warm()

    print(f"\n{'='*70}")
    print(f"  Scraping {len(targets)} product(s) from {(site or settings.DEFAULT_SITE).upper()}")
    print(f"  Fetch mode: {settings.FETCH_MODE}  |  Cache: {settings.CACHE_BACKEND}")
    print(f"{'='*70}\n")

    succeeded = 0
    try:
        for i, target in enumerate(targets, 1):
            result = await service.scrape_product(site, target)
            if result.success:
                succeeded += 1
            if as_json:
                print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
            else:
                _print_result(i, target, result)

        if export:
            paths = await ExportService(service.cache, settings.EXPORT_DIR).build_combined_export()
            print(f"Exported {paths['count']} products to {paths['json_path']} and {paths['csv_path']}\n")

    finally:
        await service.shutdown()

    print(f"{'='*70}")
    print(f"  Summary: {succeeded}/{len(targets)} succeeded")
    print(f"{'='*70}\n")


def _print_result(index: int, target: str, result: FetchResult) -> None:
    if not result.success:
        print(f"[{index}] FAILED {target}")
        print(f"    Error: {result.error}")
        print(f"    Details: {result.details}")
        print(f"    Attempts: {len(result.attempts)}\n")
        return

    record = result.record
    source = "cache" if result.cached else f"{len(result.attempts)} attempt(s)"
    print(f"[{index}] {record.title}  ({source})")
    print(f"    Brand: {record.brand}")
    print(f"    Price: {record.price}")
    print(f"    Availability: {record.availability.value}")
    if record.sizes:
        print(f"    Sizes: {', '.join(record.sizes)}")
    print(f"    Images: {len(record.images)}")
    print(f"    Key: {record.source_id}\n")


def main():
    """Parse arguments and run the scraper."""
    parser = argparse.ArgumentParser(
        description="Scrape product pages through the scraper service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/run_scraper.py --site myntra 12345678
  python scripts/run_scraper.py https://www.amazon.in/dp/B0CX23V2ZK --site amazon --json
        """,
    )

    parser.add_argument(
        "targets",
        nargs="+",
        help="Product URLs or product ids",
    )

    parser.add_argument(
        "--site",
        help=f"Site id (e.g., 'myntra', 'amazon', 'flipkart'; default: {settings.DEFAULT_SITE})",
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the JSON response envelope for each product",
    )

    parser.add_argument(
        "--export",
        action="store_true",
        help="Regenerate products.json and products.csv after scraping",
    )

    args = parser.parse_args()

    configure_logging(settings)
    asyncio.run(run_scraper(args.site, args.targets, args.json, args.export))


if __name__ == "__main__":
    main()
