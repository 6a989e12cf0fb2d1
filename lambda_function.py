"""AWS Lambda handler for the calendar events sync endpoint."""
import hmac
import json
import logging
import os
import time
from typing import Any, Dict, Optional

from logging_setup import setup_logging
from pipeline import EventSyncPipeline, HttpPageSource
from processor.errors import PersistenceError
from processor.event_processor import EventNormalizer
from scraper.calendar_page import CalendarPageFetcher
from storage.snapshot_store import DEFAULT_SNAPSHOT_PATH, FileSnapshotStore, S3SnapshotStore

ALLOWED_METHODS = ('GET', 'POST')


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'headers': {'Content-Type': 'application/json'},
        'body': json.dumps(body)
    }


def _request_method(event: Dict[str, Any]) -> Optional[str]:
    """Return the HTTP method of a proxy event (REST or HTTP API payload)."""
    method = event.get('httpMethod')
    if not method:
        method = event.get('requestContext', {}).get('http', {}).get('method')
    return method.upper() if method else None


def _header(event: Dict[str, Any], name: str) -> Optional[str]:
    headers = event.get('headers') or {}
    for key, value in headers.items():
        if key.lower() == name.lower():
            return value
    return None


def is_authorized(event: Dict[str, Any], secret: str) -> bool:
    """
    Check the bearer token of an HTTP trigger.

    Scheduled EventBridge invocations carry no headers and are trusted.
    When no secret is configured every request is accepted.
    """
    if not secret:
        return True
    if event.get('source') == 'aws.events' and 'headers' not in event:
        return True
    auth_header = _header(event, 'Authorization') or ''
    return hmac.compare_digest(auth_header.encode('utf-8'), f"Bearer {secret}".encode('utf-8'))


def build_store():
    bucket = os.environ.get('SNAPSHOT_BUCKET', '')
    if bucket:
        return S3SnapshotStore(
            bucket=bucket,
            key=os.environ.get('SNAPSHOT_KEY', 'scraped-events.json')
        )
    return FileSnapshotStore(os.environ.get('SNAPSHOT_PATH', DEFAULT_SNAPSHOT_PATH))


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler: scrape the calendar and persist the merged snapshot.

    Args:
        event: API Gateway / function URL proxy event, or EventBridge payload
        context: Lambda context object

    Returns:
        Proxy response dict with statusCode, headers and JSON body
    """
    # Read configuration from environment variables
    calendar_slug = os.environ.get('CALENDAR_SLUG', 'agivc')
    base_url = os.environ.get('CALENDAR_BASE_URL', 'https://lu.ma')
    cron_secret = os.environ.get('CRON_SECRET', '')
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    timeout_seconds = int(os.environ.get('TIMEOUT_SECONDS', '30'))
    retention = int(os.environ.get('PAST_RETENTION', '20'))

    # Initialize logging
    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    event = event or {}
    method = _request_method(event)
    if method and method not in ALLOWED_METHODS:
        return _response(405, {'error': 'Method not allowed'})

    if not is_authorized(event, cron_secret):
        logger.warning('Rejected unauthorized scrape request')
        return _response(401, {'error': 'Unauthorized'})

    start_time = time.time()
    logger.info(
        "Starting event scraper",
        extra={
            'calendar_slug': calendar_slug,
            'timeout_seconds': timeout_seconds
        }
    )

    try:
        store = build_store()
        pipeline = EventSyncPipeline(
            calendar_slug=calendar_slug,
            store=store,
            source=HttpPageSource(
                CalendarPageFetcher(base_url=base_url, timeout=timeout_seconds)
            ),
            normalizer=EventNormalizer(base_url=base_url, calendar_slug=calendar_slug),
            base_url=base_url,
            retention=retention
        )

        try:
            result = pipeline.run()
        except PersistenceError as e:
            logger.error(
                f"Failed to persist snapshot: {str(e)}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            duration = time.time() - start_time
            return _response(500, {
                'error': 'Failed to persist events',
                'details': str(e),
                'error_type': type(e).__name__,
                'duration_seconds': round(duration, 2)
            })

        duration = time.time() - start_time
        snapshot = result.snapshot

        logger.info(
            f"Scraped {len(snapshot.upcoming_events)} upcoming and "
            f"{len(snapshot.past_events)} past events",
            extra={
                'duration_seconds': round(duration, 2),
                'new_past_events': result.new_past,
                'errors': result.errors
            }
        )

        return _response(200, {
            'success': True,
            'data': snapshot.to_dict(),
            'message': 'Events scraped successfully',
            'statistics': {
                'upcoming_scraped': result.upcoming_scraped,
                'past_scraped': result.past_scraped,
                'new_past_events': result.new_past,
                'duration_seconds': round(duration, 2)
            },
            'errors': result.errors
        })

    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            f"Scraping failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return _response(500, {
            'error': 'Failed to scrape events',
            'details': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })
