"""Orchestration of a calendar sync run: fetch, extract, normalize, classify, reconcile, persist."""
import json
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Dict, List, Optional

from processor.errors import CalendarSyncError
from processor.event_processor import EventNormalizer
from processor.models import Event, ExtractionResult, RawItem, RunResult, Snapshot, format_timestamp
from processor.reconciler import PAST_RETENTION_LIMIT, classify_events, dedupe_by_id, reconcile_past_events
from scraper.browser_extractor import DomCardExtractor, render_calendar_page
from scraper.calendar_page import DEFAULT_BASE_URL, MODES, PAST, UPCOMING, CalendarPageFetcher, build_calendar_url
from scraper.extractors import CalendarPageExtractor

logger = logging.getLogger(__name__)


def write_debug_files(debug_dir: str, mode: str, html: str,
                      page_props: Optional[Dict], page: int = 1) -> None:
    """
    Save the fetched HTML and embedded page state for inspection.

    Write failures are logged and otherwise ignored; debug output never
    aborts a scrape.
    """
    suffix = mode if page == 1 else f"{mode}-{page}"
    try:
        os.makedirs(debug_dir, exist_ok=True)

        html_path = os.path.join(debug_dir, f"debug-luma-{suffix}.html")
        with open(html_path, 'w', encoding='utf-8') as f:
            f.write(html)
        logger.debug(f"Saved HTML to {html_path}")

        if page_props is not None:
            props_path = os.path.join(debug_dir, f"debug-pageprops-{suffix}.json")
            with open(props_path, 'w', encoding='utf-8') as f:
                json.dump(page_props, f, indent=2)
            logger.debug(f"Saved PageProps to {props_path}")
    except OSError as e:
        logger.warning(f"Unable to write debug files for {mode}: {e}")


class HttpPageSource:
    """Raw items from plain HTTP fetches run through the extraction chain."""

    def __init__(self, fetcher: CalendarPageFetcher,
                 extractor: Optional[CalendarPageExtractor] = None,
                 max_pages: int = 1, debug_dir: Optional[str] = None):
        self.fetcher = fetcher
        self.extractor = extractor or CalendarPageExtractor()
        self.max_pages = max_pages
        self.debug_dir = debug_dir

    def fetch_items(self, calendar_slug: str, mode: str) -> List[RawItem]:
        items: List[RawItem] = []
        cursor = None

        for page in range(1, self.max_pages + 1):
            try:
                html = self.fetcher.fetch_page(calendar_slug, mode, cursor)
            except CalendarSyncError as e:
                if page == 1:
                    raise
                logger.warning(
                    f"Stopping {mode} pagination at page {page}: {e}",
                    extra={'error_type': type(e).__name__}
                )
                break
            result = self.extractor.extract(html)

            if self.debug_dir:
                write_debug_files(self.debug_dir, mode, html, result.page_props, page)

            logger.info(
                f"Extracted {len(result.items)} {mode} items on page {page} "
                f"via {result.strategy}"
            )
            items.extend(result.items)

            cursor = result.next_cursor
            if not cursor:
                break
        return items


class BrowserPageSource:
    """Raw items from browser-rendered pages read by the DOM card extractor."""

    MAX_EVENTS = {UPCOMING: 50, PAST: 20}

    def __init__(self, base_url: str = DEFAULT_BASE_URL, scroll_attempts: int = 5,
                 renderer=render_calendar_page, debug_dir: Optional[str] = None):
        self.base_url = base_url
        self.scroll_attempts = scroll_attempts
        self.renderer = renderer
        self.debug_dir = debug_dir

    def fetch_items(self, calendar_slug: str, mode: str) -> List[RawItem]:
        url = build_calendar_url(calendar_slug, mode, base_url=self.base_url, past_style='query')
        html = self.renderer(url, scroll_attempts=self.scroll_attempts)

        extractor = DomCardExtractor(
            calendar_slug, base_url=self.base_url, max_events=self.MAX_EVENTS.get(mode)
        )
        result: ExtractionResult = extractor.extract(html)

        if self.debug_dir:
            write_debug_files(self.debug_dir, mode, html, result.page_props)
        return result.items


class EventSyncPipeline:
    """Runs one sync of a calendar into a snapshot store."""

    def __init__(
        self,
        calendar_slug: str,
        store,
        source=None,
        normalizer: Optional[EventNormalizer] = None,
        base_url: str = DEFAULT_BASE_URL,
        retention: int = PAST_RETENTION_LIMIT
    ):
        """
        Wire the pipeline.

        Args:
            calendar_slug: Calendar identifier segment
            store: Snapshot store with load() and save()
            source: Page source providing fetch_items(slug, mode)
            normalizer: Raw item normalizer
            base_url: Calendar host
            retention: Maximum number of past events kept
        """
        self.calendar_slug = calendar_slug
        self.store = store
        self.source = source or HttpPageSource(CalendarPageFetcher(base_url=base_url))
        self.normalizer = normalizer or EventNormalizer(
            base_url=base_url, calendar_slug=calendar_slug
        )
        self.retention = retention

    def run(self, now: Optional[datetime] = None) -> RunResult:
        """
        Execute a full sync.

        Args:
            now: Reference time for the whole run (default: current UTC time)

        Returns:
            RunResult with the persisted snapshot and run statistics

        Raises:
            PersistenceError: If the new snapshot cannot be written
        """
        now = now or datetime.now(timezone.utc)
        errors: List[str] = []

        prior = self.store.load()
        prior_past = prior.past_events if prior else []

        with ThreadPoolExecutor(max_workers=len(MODES)) as executor:
            futures = {
                mode: executor.submit(self._scrape_mode, mode, errors)
                for mode in MODES
            }
            scraped = {mode: future.result() for mode, future in futures.items()}

        events = dedupe_by_id(scraped[UPCOMING] + scraped[PAST])
        upcoming, past = classify_events(events, now)
        reconciled = reconcile_past_events(past, prior_past, now, limit=self.retention)

        snapshot = Snapshot(
            scraped_at=format_timestamp(now),
            calendar_slug=self.calendar_slug,
            upcoming_events=upcoming,
            past_events=reconciled.past_events,
        )

        if not upcoming and not reconciled.past_events:
            logger.warning('No events found. The page structure might have changed.')

        self.store.save(snapshot)

        logger.info(
            f"Upcoming: {len(upcoming)}, Past: {len(reconciled.past_events)}, "
            f"New Past: {reconciled.new_count}"
        )
        return RunResult(
            snapshot=snapshot,
            upcoming_scraped=len(scraped[UPCOMING]),
            past_scraped=len(scraped[PAST]),
            new_past=reconciled.new_count,
            errors=errors,
        )

    def _scrape_mode(self, mode: str, errors: List[str]) -> List[Event]:
        try:
            raw_items = self.source.fetch_items(self.calendar_slug, mode)
        except CalendarSyncError as e:
            logger.error(
                f"Failed to scrape {mode} events: {e}",
                extra={'error_type': type(e).__name__}
            )
            errors.append(f"{mode}: {e}")
            return []
        # Missing start times fall back to the clock at normalization, which
        # is later than the run's reference time.
        return self.normalizer.normalize_all(raw_items)
