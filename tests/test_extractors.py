"""Unit tests for the calendar page extraction strategies."""
import json

from conftest import featured_item, next_data_page
from processor.models import EMBEDDED_STATE, LINKED_DATA
from scraper.extractors import EVENT_LIST_PATHS, CalendarPageExtractor, find_event_list, resolve_path


class TestFindEventList:
    """Test cases for candidate path resolution."""

    def test_resolve_path_missing_step(self):
        """Test a missing intermediate key resolves to None."""
        assert resolve_path({'a': {'b': 1}}, ('a', 'c', 'd')) is None
        assert resolve_path({'a': [1]}, ('a', 'b')) is None
        assert resolve_path({'a': {'b': 1}}, ('a', 'b')) == 1

    def test_empty_events_falls_through_to_featured_items(self):
        """Test an empty list earlier in the order does not stop the search."""
        page_props = {
            'events': [],
            'initialData': {'data': {'featured_items': [{'name': 'x'}]}},
        }

        path, items = find_event_list(page_props)

        assert path == 'initialData.data.featured_items'
        assert items == [{'name': 'x'}]

    def test_first_non_empty_candidate_wins(self):
        """Test earlier candidates win over featured_items when non-empty."""
        page_props = {
            'calendar': {'events': [{'name': 'from calendar'}]},
            'initialData': {'data': {'featured_items': [{'name': 'featured'}]}},
        }

        path, items = find_event_list(page_props)

        assert path == 'calendar.events'
        assert items[0]['name'] == 'from calendar'

    def test_later_candidates_after_featured_items(self):
        """Test serverData.events is used only when everything before it is empty."""
        page_props = {
            'initialData': {'data': {'featured_items': []}},
            'serverData': {'events': [{'name': 'server'}]},
        }

        path, _ = find_event_list(page_props)

        assert path == 'serverData.events'

    def test_candidate_order(self):
        """Test the documented evaluation order of candidate paths."""
        assert EVENT_LIST_PATHS[0] == ('events',)
        assert EVENT_LIST_PATHS.index(('initialData', 'data', 'events')) < \
            EVENT_LIST_PATHS.index(('initialData', 'data', 'featured_items'))
        assert EVENT_LIST_PATHS[-1] == ('serverData', 'events')

    def test_non_list_values_ignored(self):
        """Test a mapping at a candidate location is not treated as a list."""
        path, items = find_event_list({'events': {'count': 2}})

        assert path is None
        assert items == []


class TestCalendarPageExtractor:
    """Test cases for the ordered strategy chain."""

    def test_extracts_featured_items_from_next_data(self):
        """Test events in featured_items are returned as embedded-state items."""
        html = next_data_page({
            'events': [],
            'initialData': {'data': {'featured_items': [
                featured_item('evt-1', 'Meetup', '2025-04-01T18:00:00.000Z', url='meetup'),
                featured_item('evt-2', 'Workshop', '2025-04-08T18:00:00.000Z'),
            ]}},
        })

        result = CalendarPageExtractor().extract(html)

        assert result.strategy == 'next_data'
        assert len(result.items) == 2
        assert all(item.source == EMBEDDED_STATE for item in result.items)
        assert result.items[0].payload['event']['name'] == 'Meetup'
        assert result.page_props is not None

    def test_next_cursor_reported_when_more_pages(self):
        """Test has_more/next_cursor in the page state is surfaced."""
        html = next_data_page({'initialData': {'data': {
            'featured_items': [featured_item('evt-1', 'Meetup', '2025-04-01T18:00:00Z')],
            'has_more': True,
            'next_cursor': 'cursor-2',
        }}})

        result = CalendarPageExtractor().extract(html)

        assert result.next_cursor == 'cursor-2'

    def test_malformed_next_data_falls_back_to_linked_data(self):
        """Test a corrupt state blob is recorded and the chain continues."""
        html = (
            '<html><head>'
            '<script id="__NEXT_DATA__" type="application/json">{not json</script>'
            '<script type="application/ld+json">'
            '{"@context": "https://schema.org", "@type": "Event", '
            '"name": "Structured Event", "startDate": "2025-05-01T10:00:00Z"}'
            '</script></head></html>'
        )

        result = CalendarPageExtractor().extract(html)

        assert result.strategy == 'linked_data'
        assert len(result.items) == 1
        assert result.items[0].source == LINKED_DATA
        assert result.items[0].payload['name'] == 'Structured Event'
        assert any('Malformed JSON' in error for error in result.errors)

    def test_generic_json_script_with_page_props(self):
        """Test the older page variant with state in an unnamed JSON script."""
        state = {'props': {'pageProps': {'initialData': {'data': {'featured_items': [
            featured_item('evt-9', 'Older Layout', '2025-06-01T10:00:00Z'),
        ]}}}}}
        html = (
            '<html><head>'
            '<script type="application/json">{"config": true}</script>'
            f'<script type="application/json">{json.dumps(state)}</script>'
            '</head></html>'
        )

        result = CalendarPageExtractor().extract(html)

        assert result.strategy == 'json_script'
        assert len(result.items) == 1
        assert result.items[0].source == EMBEDDED_STATE

    def test_linked_data_graph_and_lists(self):
        """Test Event objects inside @graph and top-level lists are found."""
        graph = {'@context': 'https://schema.org', '@graph': [
            {'@type': 'Organization', 'name': 'Club'},
            {'@type': 'Event', 'name': 'Graph Event', 'startDate': '2025-05-02'},
        ]}
        listed = [{'@type': ['Event', 'SocialEvent'], 'name': 'Listed Event'}]
        html = (
            '<html><head>'
            f'<script type="application/ld+json">{json.dumps(graph)}</script>'
            f'<script type="application/ld+json">{json.dumps(listed)}</script>'
            '<script type="application/ld+json">{"@type": "WebSite"}</script>'
            '</head></html>'
        )

        result = CalendarPageExtractor().extract(html)

        names = [item.payload['name'] for item in result.items]
        assert names == ['Graph Event', 'Listed Event']

    def test_no_events_anywhere(self):
        """Test a page without any recognizable data yields an empty result."""
        html = next_data_page({'initialData': {'data': {'featured_items': []}}})

        result = CalendarPageExtractor().extract(html)

        assert result.items == []
        assert not result.found
        assert result.strategy == 'none'
        assert result.page_props == {'initialData': {'data': {'featured_items': []}}}

    def test_garbage_input_does_not_raise(self):
        """Test unparseable input degrades to an empty result."""
        result = CalendarPageExtractor().extract('\x00\x01 not html at all <<<')

        assert result.items == []

    def test_empty_input(self):
        """Test empty bodies degrade to an empty result."""
        assert CalendarPageExtractor().extract('').items == []
