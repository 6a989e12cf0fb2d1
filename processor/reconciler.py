"""Classification of events by start time and reconciliation of past events across runs."""
import logging
from datetime import datetime
from typing import Iterable, List, Tuple

from processor.models import Event, ReconcileResult

logger = logging.getLogger(__name__)

PAST_RETENTION_LIMIT = 20


def _start_key(event: Event) -> datetime:
    return event.start_datetime


def dedupe_by_id(events: Iterable[Event]) -> List[Event]:
    """Keep the first occurrence of each event id, preserving order."""
    seen = set()
    unique = []
    for event in events:
        if event.id in seen:
            continue
        seen.add(event.id)
        unique.append(event)
    return unique


def classify_events(events: Iterable[Event], now: datetime) -> Tuple[List[Event], List[Event]]:
    """
    Partition events into upcoming and past relative to ``now``.

    Args:
        events: Normalized events (start_at must be parseable)
        now: Reference time captured once for the run

    Returns:
        Tuple of (upcoming ascending by start, past descending by start)
    """
    upcoming = []
    past = []
    for event in events:
        if event.start_datetime > now:
            upcoming.append(event)
        else:
            past.append(event)

    upcoming.sort(key=_start_key)
    past.sort(key=_start_key, reverse=True)
    return upcoming, past


def reconcile_past_events(
    fresh_past: List[Event],
    prior_past: List[Event],
    now: datetime,
    limit: int = PAST_RETENTION_LIMIT
) -> ReconcileResult:
    """
    Merge freshly scraped past events into the persisted history.

    Persisted entries win over newly scraped events with the same id; the
    merged list is sorted newest first and capped at ``limit``.

    Args:
        fresh_past: Past events from this run's scrape
        prior_past: Past events from the previous snapshot
        now: Reference time captured once for the run
        limit: Maximum number of past events to keep

    Returns:
        ReconcileResult with the merged list and merge counts
    """
    existing = [event for event in prior_past if event.start_datetime <= now]
    if len(existing) != len(prior_past):
        logger.info(
            f"Dropped {len(prior_past) - len(existing)} persisted past events "
            f"that are no longer in the past"
        )
    existing = dedupe_by_id(existing)

    existing_ids = {event.id for event in existing}
    new_events = [
        event for event in dedupe_by_id(fresh_past)
        if event.id not in existing_ids
    ]
    duplicates = len(fresh_past) - len(new_events)

    merged = sorted(new_events + existing, key=_start_key, reverse=True)[:limit]

    logger.info(
        f"Found {len(new_events)} new past events, {len(existing)} existing; "
        f"keeping {len(merged)} (limit {limit})"
    )
    return ReconcileResult(
        past_events=merged,
        new_count=len(new_events),
        existing_count=len(existing),
        duplicates_dropped=duplicates,
    )
