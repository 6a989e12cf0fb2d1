"""Shared fixtures and page builders for tests."""
import json
from datetime import datetime, timezone

import pytest


def next_data_page(page_props, extra_head=''):
    """Build a calendar page embedding ``page_props`` in the application state blob."""
    state = {'props': {'pageProps': page_props}, 'page': '/[slug]'}
    return (
        '<html><head>'
        f'{extra_head}'
        '<script id="__NEXT_DATA__" type="application/json">'
        f'{json.dumps(state)}'
        '</script></head><body></body></html>'
    )


def featured_item(api_id, name, start_at, url=None, cover_url=None):
    """Build a featured_items entry with the nested event wrapper."""
    event = {'api_id': api_id, 'name': name, 'start_at': start_at}
    if url:
        event['url'] = url
    if cover_url:
        event['cover_url'] = cover_url
    return {'api_id': api_id, 'event': event, 'start_at': start_at}


@pytest.fixture
def now():
    """Fixed reference time for a run."""
    return datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
