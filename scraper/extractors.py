"""Extraction strategies for locating event collections in calendar pages."""
import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup
from bs4.builder import ParserRejectedMarkup

from processor.errors import ParseError
from processor.models import EMBEDDED_STATE, LINKED_DATA, ExtractionResult, RawItem

logger = logging.getLogger(__name__)

NEXT_DATA_SCRIPT_ID = '__NEXT_DATA__'

# Locations under props.pageProps, in evaluation order. The embedded state
# differs between page variants; the first non-empty list wins.
EVENT_LIST_PATHS: Tuple[Tuple[str, ...], ...] = (
    ('events',),
    ('calendar', 'events'),
    ('initialData', 'events'),
    ('initialData', 'calendar', 'events'),
    ('initialData', 'data', 'events'),
    ('initialData', 'data', 'featured_items'),
    ('data', 'events'),
    ('serverData', 'events'),
)


def resolve_path(data: Any, path: Sequence[str]) -> Any:
    """Walk nested mappings along ``path``; None if any step is missing."""
    current = data
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def load_script_json(tag) -> Any:
    """
    Decode the JSON body of a script tag.

    Raises:
        ParseError: If the body is empty or not valid JSON
    """
    content = tag.string if tag.string is not None else tag.get_text()
    if not content or not content.strip():
        raise ParseError('Empty JSON script block')
    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise ParseError(f"Malformed JSON script block: {e}") from e


def find_event_list(page_props: Any) -> Tuple[Optional[str], List[Any]]:
    """
    Return the first candidate path that resolves to a non-empty list.

    Returns:
        Tuple of (dotted path, items) or (None, []) if nothing matched
    """
    for path in EVENT_LIST_PATHS:
        value = resolve_path(page_props, path)
        if isinstance(value, list) and value:
            return '.'.join(path), value
    return None, []


def _next_cursor(page_props: Any) -> Optional[str]:
    data = resolve_path(page_props, ('initialData', 'data'))
    if isinstance(data, dict) and data.get('has_more') and data.get('next_cursor'):
        return str(data['next_cursor'])
    return None


class NextDataStrategy:
    """Reads the full-page application state blob."""

    name = 'next_data'

    def extract(self, soup: BeautifulSoup) -> ExtractionResult:
        result = ExtractionResult(strategy=self.name)
        tag = soup.find('script', id=NEXT_DATA_SCRIPT_ID)
        if tag is None:
            logger.debug('No embedded application state block found')
            return result

        try:
            state = load_script_json(tag)
        except ParseError as e:
            logger.warning(f"Error parsing {NEXT_DATA_SCRIPT_ID}: {e}")
            result.errors.append(str(e))
            return result

        page_props = resolve_path(state, ('props', 'pageProps'))
        if not isinstance(page_props, dict):
            logger.debug('Embedded state has no pageProps')
            return result

        logger.debug(f"PageProps keys: {sorted(page_props.keys())}")
        result.page_props = page_props

        path, items = find_event_list(page_props)
        if path:
            logger.info(f"Found {len(items)} events at pageProps.{path}")
            result.items = [
                RawItem(source=EMBEDDED_STATE, payload=item)
                for item in items if isinstance(item, dict)
            ]
            result.next_cursor = _next_cursor(page_props)
        return result


class JsonScriptStrategy:
    """Scans generic JSON script blocks other than the application state."""

    name = 'json_script'

    def extract(self, soup: BeautifulSoup) -> ExtractionResult:
        result = ExtractionResult(strategy=self.name)
        for tag in soup.find_all('script', type='application/json'):
            if tag.get('id') == NEXT_DATA_SCRIPT_ID:
                continue
            try:
                data = load_script_json(tag)
            except ParseError as e:
                logger.debug(f"Skipping JSON script block: {e}")
                result.errors.append(str(e))
                continue

            if not isinstance(data, dict):
                continue
            logger.debug(f"Found JSON script with keys: {sorted(data.keys())}")

            page_props = resolve_path(data, ('props', 'pageProps'))
            path, items = find_event_list(page_props)
            if path:
                logger.info(f"Found {len(items)} events in JSON script at pageProps.{path}")
                result.items = [
                    RawItem(source=EMBEDDED_STATE, payload=item)
                    for item in items if isinstance(item, dict)
                ]
                result.page_props = page_props
                break
        return result


def _is_event_type(value: Any) -> bool:
    if isinstance(value, list):
        return 'Event' in value
    return value == 'Event'


def _linked_data_objects(data: Any) -> Iterable[Dict[str, Any]]:
    if isinstance(data, list):
        for entry in data:
            yield from _linked_data_objects(entry)
    elif isinstance(data, dict):
        if isinstance(data.get('@graph'), list):
            yield from _linked_data_objects(data['@graph'])
        if _is_event_type(data.get('@type')):
            yield data
        elif isinstance(data.get('event'), dict):
            yield from _linked_data_objects(data['event'])


class LinkedDataStrategy:
    """Collects schema.org Event objects from ld+json blocks."""

    name = 'linked_data'

    def extract(self, soup: BeautifulSoup) -> ExtractionResult:
        result = ExtractionResult(strategy=self.name)
        for tag in soup.find_all('script', type='application/ld+json'):
            try:
                data = load_script_json(tag)
            except ParseError as e:
                logger.debug(f"Skipping structured data block: {e}")
                result.errors.append(str(e))
                continue

            for item in _linked_data_objects(data):
                result.items.append(RawItem(source=LINKED_DATA, payload=item))

        if result.items:
            logger.info(f"Found {len(result.items)} events in structured data")
        return result


class CalendarPageExtractor:
    """Runs extraction strategies in order and keeps the first non-empty result."""

    def __init__(self, strategies: Optional[List[Any]] = None):
        self.strategies = strategies if strategies is not None else [
            NextDataStrategy(),
            JsonScriptStrategy(),
            LinkedDataStrategy(),
        ]

    def extract(self, html: str) -> ExtractionResult:
        """
        Locate raw event items in a page.

        Args:
            html: Raw page body

        Returns:
            ExtractionResult of the winning strategy, or an empty result
            carrying every strategy's errors when nothing was found
        """
        errors: List[str] = []
        page_props = None

        try:
            soup = BeautifulSoup(html or '', 'html.parser')
        except ParserRejectedMarkup as e:
            logger.error(f"Unable to parse page HTML: {e}")
            return ExtractionResult(strategy='none', errors=[str(e)])

        for strategy in self.strategies:
            result = strategy.extract(soup)
            errors.extend(result.errors)
            if page_props is None:
                page_props = result.page_props
            if result.found:
                result.errors = errors
                return result
            logger.info(f"Strategy {strategy.name} found no events, trying next")

        return ExtractionResult(strategy='none', errors=errors, page_props=page_props)
