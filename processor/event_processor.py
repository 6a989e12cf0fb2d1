"""Normalizer mapping raw calendar items to canonical events."""
import hashlib
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urljoin, urlparse

from processor.models import (
    DOM_CARD,
    EMBEDDED_STATE,
    LINKED_DATA,
    Event,
    RawItem,
    format_timestamp,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

PLACEHOLDER_COVER = '/placeholder.jpg'

Path = Tuple[str, ...]

# Field lookup order per raw item variant. Paths are resolved against a view
# where "event" is the (unwrapped) event mapping and "item" the original item.
FIELD_PATHS: Dict[str, Dict[str, Sequence[Path]]] = {
    EMBEDDED_STATE: {
        'id': (('event', 'api_id'), ('event', 'id')),
        'name': (('event', 'name'),),
        'start_at': (('event', 'start_at'), ('event', 'startDate'), ('item', 'start_at')),
        'cover_url': (('event', 'cover_url'), ('event', 'social_image_url'), ('event', 'image')),
        'url': (('event', 'url'),),
    },
    LINKED_DATA: {
        'id': (('event', 'identifier'), ('event', '@id')),
        'name': (('event', 'name'),),
        'start_at': (('event', 'startDate'),),
        'cover_url': (('event', 'image'),),
        'url': (('event', 'url'),),
    },
    DOM_CARD: {
        'id': (('event', 'id'),),
        'name': (('event', 'name'),),
        'start_at': (('event', 'start_at'),),
        'cover_url': (('event', 'cover_url'),),
        'url': (('event', 'url'),),
    },
}


def _text(value: Any) -> Optional[str]:
    """Reduce a raw field value to a non-empty string, if possible."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, list):
        for entry in value:
            text = _text(entry)
            if text:
                return text
        return None
    if isinstance(value, dict):
        # schema.org ImageObject / identifier objects
        return _text(value.get('url')) or _text(value.get('value'))
    return None


def _slug_from_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    path = urlparse(url).path.strip('/')
    if not path:
        return None
    return path.rsplit('/', 1)[-1] or None


def _is_absolute(url: str) -> bool:
    return bool(urlparse(url).scheme)


class EventNormalizer:
    """Maps raw items of varying shape to canonical Event records."""

    def __init__(self, base_url: str = 'https://lu.ma', calendar_slug: str = '',
                 placeholder: str = PLACEHOLDER_COVER):
        """
        Initialize the normalizer.

        Args:
            base_url: Calendar host used to absolutize event links
            calendar_slug: Calendar identifier, used for fallback links
            placeholder: Cover image used when an item has none
        """
        self.base_url = base_url.rstrip('/')
        self.calendar_slug = calendar_slug
        self.placeholder = placeholder

    def normalize_all(self, raw_items: List[RawItem],
                      now: Optional[datetime] = None) -> List[Event]:
        """
        Normalize a list of raw items, dropping invalid ones.

        Args:
            raw_items: Items from an extraction strategy
            now: Reference time substituted for missing start times

        Returns:
            List of valid Event objects
        """
        now = now or datetime.now(timezone.utc)
        events = []

        for raw in raw_items:
            event = self.normalize(raw, now)
            if event:
                events.append(event)

        logger.info(
            f"Normalized {len(events)} valid events out of "
            f"{len(raw_items)} raw items"
        )
        return events

    def normalize(self, raw: RawItem, now: Optional[datetime] = None) -> Optional[Event]:
        """
        Normalize a single raw item.

        Returns:
            Event or None if the item lacks a name or an identifier,
            or carries an unparseable start time
        """
        now = now or datetime.now(timezone.utc)
        paths = FIELD_PATHS.get(raw.source)
        if paths is None or not isinstance(raw.payload, dict):
            logger.warning(f"Unsupported raw item source: {raw.source}")
            return None

        view = self._view(raw)

        name = self._first(view, paths['name'])
        if not name:
            logger.debug('Skipping item without a name')
            return None

        url = self._first(view, paths['url'])
        event_id = self._first(view, paths['id'])
        if not event_id and raw.source == LINKED_DATA:
            event_id = _slug_from_url(url) or self._generated_id(name, now)
        if not event_id:
            logger.debug(f"Skipping item without an identifier: {name}")
            return None

        start_at = self._first(view, paths['start_at'])
        if start_at is None:
            # Unknown start: reads as "now", so classification is unreliable
            start_at = format_timestamp(now)
        elif parse_timestamp(start_at) is None:
            logger.warning(f"Invalid start time for event '{name}': {start_at}")
            return None

        cover_url = self._first(view, paths['cover_url']) or self.placeholder

        return Event(
            id=event_id,
            name=name,
            start_at=start_at,
            cover_url=cover_url,
            url=self._event_url(raw.source, url, event_id),
        )

    def _view(self, raw: RawItem) -> Dict[str, Dict[str, Any]]:
        item = raw.payload
        event = item.get('event') if isinstance(item.get('event'), dict) else item
        return {'event': event, 'item': item}

    def _first(self, view: Dict[str, Dict[str, Any]], paths: Sequence[Path]) -> Optional[str]:
        for scope, key in paths:
            value = _text(view[scope].get(key))
            if value:
                return value
        return None

    def _event_url(self, source: str, url: Optional[str], event_id: str) -> str:
        if url:
            if _is_absolute(url):
                return url
            return urljoin(f"{self.base_url}/", url.lstrip('/'))
        if source == LINKED_DATA:
            return f"{self.base_url}/{self.calendar_slug}"
        return f"{self.base_url}/{event_id}"

    def _generated_id(self, name: str, now: datetime) -> str:
        digest = hashlib.sha1(name.encode('utf-8')).hexdigest()[:8]
        return f"{int(now.timestamp() * 1000)}-{digest}"
