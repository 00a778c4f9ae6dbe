"""
Command line entry point for the Miata Marketplace scraper.
"""
import argparse
import asyncio
import json
import logging
import os
import sys
import uuid

from .config import config
from .exceptions import ScraperError
from .models import SearchParams
from .navigation import Credentials, run_scrape
from .progress import ProgressChannel
from .utils import init_logger, now_iso

logger = logging.getLogger("miata_scraper")


def parse_args(argv=None):
    ap = argparse.ArgumentParser(description="Facebook Marketplace Miata finder with progress reporting")
    ap.add_argument("--zip", dest="zip_code", type=str, default="", help="ZIP code of the search area")
    ap.add_argument("--radius", type=int, default=50, help="Search radius in miles")
    ap.add_argument("--year-min", type=int, default=1989, help="Oldest model year")
    ap.add_argument("--year-max", type=int, default=2025, help="Newest model year")
    ap.add_argument("--max-mileage", type=int, default=500_000, help="Maximum odometer reading")
    ap.add_argument("--max-price", type=int, default=None, help="Maximum asking price")
    ap.add_argument("--limit", type=int, default=20, help="Maximum listings to visit")
    ap.add_argument("--debug", action="store_true", help="Visit only the first 3 listings")
    ap.add_argument("--headless", action="store_true", default=config.HEADLESS, help="Run without UI")
    ap.add_argument("--storage-state", type=str, default=config.STORAGE_STATE, help="Path to storage_state.json")
    ap.add_argument("--debug-dir", type=str, default=config.DEBUG_DIR, help="Where diagnostic screenshots go")
    ap.add_argument("--id-strategy", choices=["fresh", "url"], default=config.LISTING_ID_STRATEGY,
                    help="Listing ids: new per run, or derived from the item URL")
    ap.add_argument("--json-out", type=str, default="", help="Write the kept listings to this JSON file")
    # Logging
    lvl_choices = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    ap.add_argument("--log-level", choices=lvl_choices, default=None,
                    help="Global log level for both console and file (overrides --log-console/--log-file).")
    ap.add_argument("--log-console", choices=lvl_choices, default=os.getenv("LOG_CONSOLE", "INFO"),
                    help="Console log level (default from env LOG_CONSOLE or INFO).")
    ap.add_argument("--log-file", choices=lvl_choices, default=os.getenv("LOG_FILE", "DEBUG"),
                    help="File log level (default from env LOG_FILE or DEBUG).")
    ap.add_argument("--log-file-path", default=os.getenv("LOG_FILE_PATH", "miata_scraper.log"),
                    help="Path to log file (default from env LOG_FILE_PATH or miata_scraper.log).")
    ap.add_argument("--no-file-log", action="store_true",
                    help="Disable file logging (only console output).")
    return ap.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    eff_console = args.log_level or args.log_console
    eff_file = args.log_level or args.log_file
    init_logger(
        console_level=eff_console,
        file_level=eff_file,
        log_file=None if args.no_file_log else args.log_file_path
    )
    logger.info(
        f"Logger initialized: console={eff_console}, "
        f"file={'DISABLED' if args.no_file_log else eff_file}, "
        f"path={'N/A' if args.no_file_log else args.log_file_path}"
    )

    try:
        params = SearchParams(
            zip_code=args.zip_code, radius=args.radius,
            year_min=args.year_min, year_max=args.year_max,
            max_mileage=args.max_mileage, max_price=args.max_price,
            limit=args.limit, debug=args.debug,
        )
    except ScraperError as e:
        logger.error(f"Invalid search parameters: {e}")
        return 2

    config.HEADLESS = args.headless
    config.STORAGE_STATE = args.storage_state

    session_id = uuid.uuid4().hex
    channel = ProgressChannel()
    channel.subscribe(session_id, lambda ev: logger.info(f"[{ev.stage.value}] {ev.detail}"))
    logger.info(f">>> Run started at {now_iso()}")

    try:
        result = asyncio.run(run_scrape(
            params, session_id, channel,
            credentials=Credentials(config.FB_EMAIL, config.FB_PASSWORD),
            id_strategy=args.id_strategy,
            debug_dir=args.debug_dir,
        ))
    except ScraperError as e:
        logger.error(f">>> Scrape failed: {e}")
        return 1

    for lst in result.listings:
        logger.info(
            f"Found item: {lst.id} | {lst.title} | {lst.year} | ${lst.price} | "
            f"{lst.mileage} mi | {lst.transmission.value} | {lst.url}"
        )

    if args.json_out:
        with open(args.json_out, "w", encoding="utf-8") as f:
            json.dump([lst.to_dict() for lst in result.listings], f, ensure_ascii=False, indent=2)
        logger.info(f">>> Saved {len(result.listings)} listings to {args.json_out}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
