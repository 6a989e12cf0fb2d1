"""Browser-rendered calendar scraping: render with Playwright, read event cards from the DOM."""
import json
import logging
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from processor.errors import NetworkError
from processor.models import DOM_CARD, ExtractionResult, RawItem
from scraper.calendar_page import BROWSER_USER_AGENT, DEFAULT_BASE_URL
from scraper.extractors import NEXT_DATA_SCRIPT_ID, resolve_path

logger = logging.getLogger(__name__)

PLACEHOLDER_COVER = '/placeholder.jpg'

SKIP_HREF_PATTERNS = ('explore', 'mapbox', 'openstreetmap', 'terms', 'privacy')
SKIP_NAME_PATTERNS = ('explore', 'mapbox', '©')


def render_calendar_page(
    url: str,
    scroll_attempts: int = 5,
    scroll_pause_ms: int = 2000,
    settle_ms: int = 3000,
    timeout_ms: int = 60000
) -> str:
    """
    Load a calendar page in headless Chromium and return the rendered HTML.

    The listing loads more cards as the page is scrolled, so the page is
    scrolled to the bottom ``scroll_attempts`` times with a fixed pause.

    Args:
        url: Calendar page URL
        scroll_attempts: Number of scroll-and-wait cycles
        scroll_pause_ms: Pause after each scroll
        settle_ms: Initial wait for client-side rendering
        timeout_ms: Navigation timeout

    Returns:
        Rendered page HTML
    """
    from playwright.sync_api import Error as PlaywrightError
    from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
    from playwright.sync_api import sync_playwright

    try:
        with sync_playwright() as p:
            browser = p.chromium.launch(
                headless=True,
                args=['--no-sandbox', '--disable-setuid-sandbox'],
            )
            try:
                page = browser.new_page(
                    viewport={'width': 1280, 'height': 800},
                    user_agent=BROWSER_USER_AGENT,
                )
                logger.info(f"Navigating to {url}")
                try:
                    page.goto(url, wait_until='domcontentloaded', timeout=timeout_ms)
                except PlaywrightTimeoutError:
                    logger.warning('Navigation timed out, continuing with partially loaded page')

                page.wait_for_timeout(settle_ms)

                for attempt in range(scroll_attempts):
                    logger.debug(f"Scroll attempt {attempt + 1}/{scroll_attempts}")
                    page.evaluate('window.scrollTo(0, document.body.scrollHeight)')
                    page.wait_for_timeout(scroll_pause_ms)

                return page.content()
            finally:
                browser.close()
                logger.debug('Browser closed')
    except PlaywrightError as e:
        logger.error(f"Browser rendering of {url} failed: {e}")
        raise NetworkError(f"Browser rendering of {url} failed: {e}") from e


class DomCardExtractor:
    """Reads event cards from rendered HTML and attaches start times from the page state."""

    name = 'dom_cards'

    def __init__(self, calendar_slug: str, base_url: str = DEFAULT_BASE_URL,
                 max_events: Optional[int] = None):
        self.calendar_slug = calendar_slug
        self.base_url = base_url.rstrip('/')
        self.max_events = max_events

    def extract(self, html: str) -> ExtractionResult:
        """
        Extract enriched event cards.

        Cards whose slug has no start time in the embedded state are dropped,
        since they cannot be classified as upcoming or past.
        """
        result = ExtractionResult(strategy=self.name)
        soup = BeautifulSoup(html or '', 'html.parser')

        cards = self.find_cards(soup)
        logger.info(f"Found {len(cards)} event cards in DOM")

        event_data = self._event_data_by_slug(soup, result)
        logger.info(f"Found {len(event_data)} events with full data in page state")

        for card in cards:
            data = event_data.get(card['id'])
            if not data or not data.get('start_at'):
                logger.debug(f"Dropping card without timestamp: {card['id']}")
                continue
            result.items.append(RawItem(source=DOM_CARD, payload={
                'id': data.get('id') or card['id'],
                'name': data.get('name') or card['name'],
                'start_at': data['start_at'],
                'cover_url': data.get('cover_url') or card['cover_url'],
                'url': card['url'],
            }))

        logger.info(
            f"Enriched {len(result.items)} of {len(cards)} DOM events with timestamp data"
        )
        if self.max_events is not None:
            result.items = result.items[:self.max_events]
        return result

    def find_cards(self, soup: BeautifulSoup) -> List[Dict[str, str]]:
        """Return de-duplicated card dicts (id, name, cover_url, url) in page order."""
        cards: Dict[str, Dict[str, str]] = {}

        for section in soup.select('.timeline-section'):
            if 'shimmer-wrapper' in (section.get('class') or []):
                continue
            if section.select_one('.shimmer-wrapper') is not None:
                continue

            link = section.select_one('a[href^="/"]')
            if link is None:
                continue
            href = link.get('href') or ''
            if href == '/' or len(href) < 3:
                continue
            lowered = href.lower()
            if any(pattern in lowered for pattern in self._skip_href_patterns()):
                continue

            heading = section.find('h3')
            name = heading.get_text(strip=True) if heading else ''
            if len(name) < 3:
                continue
            if any(pattern in name.lower() for pattern in SKIP_NAME_PATTERNS):
                continue

            image = section.select_one('img[alt*="Cover"]') or section.find('img')
            cover_url = ''
            if image is not None:
                cover_url = image.get('src') or image.get('data-src') or ''

            event_id = href.lstrip('/')
            cards[event_id] = {
                'id': event_id,
                'name': name,
                'cover_url': cover_url or PLACEHOLDER_COVER,
                'url': f"{self.base_url}{href}",
            }

        return list(cards.values())

    def _skip_href_patterns(self):
        return SKIP_HREF_PATTERNS + (self.calendar_slug.lower(),)

    def _event_data_by_slug(self, soup: BeautifulSoup,
                            result: ExtractionResult) -> Dict[str, Dict[str, Any]]:
        tag = soup.find('script', id=NEXT_DATA_SCRIPT_ID)
        if tag is None:
            return {}
        try:
            state = json.loads(tag.string or tag.get_text() or '{}')
        except json.JSONDecodeError as e:
            logger.warning(f"Error parsing {NEXT_DATA_SCRIPT_ID}: {e}")
            result.errors.append(str(e))
            return {}

        result.page_props = resolve_path(state, ('props', 'pageProps'))
        data = resolve_path(state, ('props', 'pageProps', 'initialData', 'data'))
        if not isinstance(data, dict):
            return {}

        by_slug: Dict[str, Dict[str, Any]] = {}
        for key in ('featured_items', 'items'):
            entries = data.get(key)
            if not isinstance(entries, list):
                continue
            for item in entries:
                if not isinstance(item, dict):
                    continue
                event = item.get('event') if isinstance(item.get('event'), dict) else item
                slug = event.get('url')
                if not slug:
                    continue
                by_slug[slug] = {
                    'id': event.get('api_id') or slug,
                    'name': event.get('name'),
                    'start_at': event.get('start_at'),
                    'cover_url': event.get('cover_url') or event.get('social_image_url'),
                }
        return by_slug
