"""Command-line entry point: scrape a calendar into the local snapshot file."""
import argparse
import logging
import os
import sys
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from logging_setup import setup_logging
from pipeline import BrowserPageSource, EventSyncPipeline, HttpPageSource
from processor.models import Event
from scraper.calendar_page import CalendarPageFetcher
from storage.snapshot_store import DEFAULT_SNAPSHOT_PATH, FileSnapshotStore, is_stale

logger = logging.getLogger('scrape_calendar')


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Scrape a public event calendar into a snapshot file.')
    parser.add_argument('calendar_slug', nargs='?',
                        default=os.environ.get('CALENDAR_SLUG', 'agivc'),
                        help='Calendar identifier segment (default: %(default)s)')
    parser.add_argument('--debug', action='store_true',
                        help='Verbose logging; save fetched HTML and page state')
    parser.add_argument('--browser', action='store_true',
                        help='Render pages in a headless browser and read event cards from the DOM')
    parser.add_argument('--output', default=os.environ.get('SNAPSHOT_PATH', DEFAULT_SNAPSHOT_PATH),
                        help='Snapshot file path (default: %(default)s)')
    parser.add_argument('--debug-dir', default='.',
                        help='Directory for debug files (default: current directory)')
    parser.add_argument('--max-age-hours', type=float, default=None,
                        help='Skip the run if the snapshot is younger than this')
    parser.add_argument('--pages', type=int, default=1,
                        help='Maximum listing pages to follow per mode (default: 1)')
    return parser.parse_args(argv)


def _log_events(title: str, events: List[Event], limit: int = 5) -> None:
    if not events:
        return
    logger.info(title)
    for index, event in enumerate(events[:limit], start=1):
        logger.info(f"{index}. {event.name} ({event.start_at})")
    if len(events) > limit:
        logger.info(f"... and {len(events) - limit} more")


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging('DEBUG' if args.debug else os.environ.get('LOG_LEVEL', 'INFO'),
                  json_format=False)

    base_url = os.environ.get('CALENDAR_BASE_URL', 'https://lu.ma')
    timeout_seconds = int(os.environ.get('TIMEOUT_SECONDS', '30'))
    retention = int(os.environ.get('PAST_RETENTION', '20'))
    debug_dir = args.debug_dir if args.debug else None

    logger.info(f"Starting scraper for: {args.calendar_slug}")

    try:
        store = FileSnapshotStore(args.output)

        if args.max_age_hours is not None:
            max_age = timedelta(hours=args.max_age_hours)
            if not is_stale(store.load(), datetime.now(timezone.utc), max_age):
                logger.info('Events are up to date, skipping scrape')
                return 0

        if args.browser:
            source = BrowserPageSource(base_url=base_url, debug_dir=debug_dir)
        else:
            source = HttpPageSource(
                CalendarPageFetcher(base_url=base_url, timeout=timeout_seconds),
                max_pages=args.pages,
                debug_dir=debug_dir
            )

        pipeline = EventSyncPipeline(
            calendar_slug=args.calendar_slug,
            store=store,
            source=source,
            base_url=base_url,
            retention=retention
        )
        result = pipeline.run()
    except Exception as e:
        logger.error(f"Scraper failed: {e}", exc_info=True)
        return 1

    snapshot = result.snapshot
    logger.info(
        f"Saved {len(snapshot.upcoming_events)} upcoming and "
        f"{len(snapshot.past_events)} past events to {args.output}"
    )
    _log_events('Upcoming events found:', snapshot.upcoming_events)
    _log_events('Past events (showing first 5):', snapshot.past_events)
    for error in result.errors:
        logger.warning(f"Partial failure: {error}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
