"""
Main entry point for the Taipei Rental Hub.
"""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from .application import RentalHubApplication
from .utils.error_handling import TranslationFailure
from .utils.logging import get_logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rental-hub",
        description="Aggregate Taipei rental listings and search them",
    )
    parser.add_argument("--config", "-c", type=str, help="Path to configuration file")

    subparsers = parser.add_subparsers(dest="command", required=True)

    crawl = subparsers.add_parser("crawl", help="Crawl enabled sources")
    crawl.add_argument("--once", action="store_true", help="Crawl once and exit instead of scheduling")
    crawl.add_argument("--source", action="append", help="Only crawl this source (repeatable)")
    crawl.add_argument("--max-pages", type=int, help="Override max pages per source")

    search = subparsers.add_parser("search", help="Natural-language search")
    search.add_argument("text", help="Free-text rental request, e.g. 大安區 兩萬以下 可養寵物")
    search.add_argument("--page", type=int, default=1)
    search.add_argument("--limit", type=int)

    subparsers.add_parser("stats", help="Listing and crawl statistics")

    stale = subparsers.add_parser("deactivate-stale", help="Deactivate listings not seen recently")
    stale.add_argument("--days", type=int, help="Days without sighting (default from config)")

    return parser


def _print_json(data) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2, default=str))


async def async_main(args: argparse.Namespace) -> int:
    """Async main application entry point."""
    logger = get_logger("main")
    app = RentalHubApplication(args.config)

    if not await app.initialize():
        logger.error("System initialization failed", {"config_path": args.config})
        return 1

    try:
        if args.command == "crawl":
            if args.once:
                source_options = None
                if args.source or args.max_pages:
                    names = args.source or list(app.crawler.adapters)
                    source_options = {
                        name: ({"maxPages": args.max_pages} if args.max_pages else None)
                        for name in names
                    }
                summary = await app.run_once(source_options)
                _print_json(summary.to_dict())
                return 1 if summary.errors and len(summary.errors) == len(summary.runs) else 0
            await app.run_scheduled()
            return 0

        if args.command == "search":
            try:
                result = await app.search_service.natural_language_search(
                    args.text, page=args.page, limit=args.limit
                )
            except TranslationFailure as e:
                logger.error("Could not understand the search request", {"error": str(e)})
                return 2
            _print_json(result)
            return 0

        if args.command == "stats":
            _print_json(
                {
                    "listings": await app.search_service.get_listing_stats(),
                    "crawls": app.crawler.get_run_stats(),
                    "status": app.crawler.get_status(),
                }
            )
            return 0

        if args.command == "deactivate-stale":
            _print_json({"deactivated": app.deactivate_stale(args.days)})
            return 0

        return 1

    finally:
        await app.shutdown()


def main(argv: Optional[List[str]] = None):
    """Main application entry point."""
    args = build_parser().parse_args(argv)

    try:
        exit_code = asyncio.run(async_main(args))
    except KeyboardInterrupt:
        print("\nShutdown requested by user")
        exit_code = 130
    except Exception as e:
        print(f"Fatal error: {e}")
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
