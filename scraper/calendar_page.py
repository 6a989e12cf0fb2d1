"""HTTP fetcher for public event calendar pages."""
import logging
from typing import Dict, Optional
from urllib.parse import urlencode

import requests

from processor.errors import FetchError, NetworkError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://lu.ma"

UPCOMING = 'upcoming'
PAST = 'past'
MODES = (UPCOMING, PAST)

BROWSER_USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
)

BROWSER_HEADERS = {
    'User-Agent': BROWSER_USER_AGENT,
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8',
    'Accept-Language': 'en-US,en;q=0.5',
    'DNT': '1',
    'Connection': 'keep-alive',
    'Upgrade-Insecure-Requests': '1',
}


def build_calendar_url(
    calendar_slug: str,
    mode: str = UPCOMING,
    cursor: Optional[str] = None,
    base_url: str = DEFAULT_BASE_URL,
    past_style: str = 'path'
) -> str:
    """
    Build the calendar page URL for a listing mode.

    Args:
        calendar_slug: Calendar identifier segment (e.g. "agivc")
        mode: "upcoming" or "past"
        cursor: Optional pagination cursor
        base_url: Calendar host
        past_style: "path" for /<slug>/past, "query" for ?k=c&period=past

    Returns:
        Absolute URL string
    """
    if mode not in MODES:
        raise ValueError(f"Unknown listing mode: {mode}")

    url = f"{base_url.rstrip('/')}/{calendar_slug}"
    params: Dict[str, str] = {}

    if mode == PAST:
        if past_style == 'query':
            params['k'] = 'c'
            params['period'] = 'past'
        else:
            url = f"{url}/past"

    if cursor:
        params['pagination_cursor'] = cursor

    if params:
        url = f"{url}?{urlencode(params)}"
    return url


class CalendarPageFetcher:
    """Fetches calendar listing pages with browser-like headers."""

    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: int = 30):
        """
        Initialize the page fetcher.

        Args:
            base_url: Calendar host (default: https://lu.ma)
            timeout: HTTP request timeout in seconds (default: 30)
        """
        self.base_url = base_url
        self.timeout = timeout

    def fetch_page(self, calendar_slug: str, mode: str = UPCOMING,
                   cursor: Optional[str] = None) -> str:
        """
        Fetch one listing page.

        Args:
            calendar_slug: Calendar identifier segment
            mode: "upcoming" or "past"
            cursor: Optional pagination cursor

        Returns:
            Response body as text

        Raises:
            FetchError: On a non-2xx response
            NetworkError: On a transport failure
        """
        url = build_calendar_url(calendar_slug, mode, cursor, base_url=self.base_url)
        logger.info(f"Fetching {mode} calendar page: {url}")

        try:
            response = requests.get(url, headers=BROWSER_HEADERS, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Request for {url} failed: {e}")
            raise NetworkError(f"Request for {url} failed: {e}") from e

        if not 200 <= response.status_code < 300:
            logger.error(
                f"Calendar page returned HTTP {response.status_code}: {response.reason}"
            )
            raise FetchError(response.status_code, response.reason or '', url)

        logger.debug(f"Received {len(response.text)} characters of HTML from {url}")
        return response.text
