"""Data models for calendar event processing."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


EMBEDDED_STATE = 'embedded_state'
LINKED_DATA = 'linked_data'
DOM_CARD = 'dom_card'


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO 8601 timestamp into an aware datetime.

    Naive values are read as UTC. A trailing ``Z`` is accepted.

    Args:
        value: Timestamp string (e.g. "2025-01-05T18:00:00.000Z")

    Returns:
        Aware datetime or None if the value cannot be parsed
    """
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    if text.endswith('Z') or text.endswith('z'):
        text = text[:-1] + '+00:00'

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(moment: datetime) -> str:
    """Format a datetime as UTC with millisecond precision and a Z suffix."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime('%Y-%m-%dT%H:%M:%S.') + f"{moment.microsecond // 1000:03d}Z"


@dataclass
class RawItem:
    """Event-like mapping found on a calendar page, tagged by where it came from."""
    source: str
    payload: Dict[str, Any]


@dataclass
class Event:
    """Canonical event record shared by every pipeline stage."""
    id: str
    name: str
    start_at: str
    cover_url: Optional[str] = None
    url: Optional[str] = None

    @property
    def start_datetime(self) -> Optional[datetime]:
        return parse_timestamp(self.start_at)

    def to_dict(self) -> Dict[str, Any]:
        item = {
            'id': self.id,
            'name': self.name,
            'start_at': self.start_at,
        }
        if self.cover_url is not None:
            item['cover_url'] = self.cover_url
        if self.url is not None:
            item['url'] = self.url
        return item

    @classmethod
    def from_dict(cls, item: Dict[str, Any]) -> Optional['Event']:
        """
        Build an Event from a persisted mapping.

        Returns:
            Event or None if required fields are missing or start_at is unparseable
        """
        if not isinstance(item, dict):
            return None
        if not item.get('id') or not item.get('name'):
            return None
        if parse_timestamp(item.get('start_at')) is None:
            return None
        return cls(
            id=str(item['id']),
            name=item['name'],
            start_at=item['start_at'],
            cover_url=item.get('cover_url'),
            url=item.get('url'),
        )


@dataclass
class Snapshot:
    """Persisted result of a sync run, read by the website and the next run."""
    scraped_at: str
    calendar_slug: str
    upcoming_events: List[Event] = field(default_factory=list)
    past_events: List[Event] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize including the legacy mirror fields older readers expect."""
        upcoming = [event.to_dict() for event in self.upcoming_events]
        return {
            'scraped_at': self.scraped_at,
            'calendar_slug': self.calendar_slug,
            'upcoming_count': len(self.upcoming_events),
            'past_count': len(self.past_events),
            'upcoming_events': upcoming,
            'past_events': [event.to_dict() for event in self.past_events],
            # Backwards compatibility
            'events_count': len(self.upcoming_events),
            'events': upcoming,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Snapshot':
        upcoming_raw = data.get('upcoming_events')
        if not isinstance(upcoming_raw, list):
            upcoming_raw = data.get('events')
        past_raw = data.get('past_events')

        return cls(
            scraped_at=data.get('scraped_at') or '',
            calendar_slug=data.get('calendar_slug') or '',
            upcoming_events=_events_from_list(upcoming_raw),
            past_events=_events_from_list(past_raw),
        )


def _events_from_list(items: Any) -> List[Event]:
    if not isinstance(items, list):
        return []
    events = []
    for item in items:
        event = Event.from_dict(item)
        if event:
            events.append(event)
    return events


@dataclass
class ExtractionResult:
    """Outcome of one extraction strategy (or of the whole chain)."""
    strategy: str
    items: List[RawItem] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    next_cursor: Optional[str] = None
    page_props: Optional[Dict[str, Any]] = None

    @property
    def found(self) -> bool:
        return bool(self.items)


@dataclass
class ReconcileResult:
    """Result of merging freshly scraped past events with persisted ones."""
    past_events: List[Event]
    new_count: int
    existing_count: int
    duplicates_dropped: int


@dataclass
class RunResult:
    """Summary of a full sync run."""
    snapshot: Snapshot
    upcoming_scraped: int
    past_scraped: int
    new_past: int
    errors: List[str]
    skipped: bool = False
