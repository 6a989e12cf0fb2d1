"""Unit tests for EventNormalizer."""
from datetime import datetime, timezone

import pytest

from processor.event_processor import EventNormalizer
from processor.models import DOM_CARD, EMBEDDED_STATE, LINKED_DATA, RawItem


@pytest.fixture
def normalizer():
    return EventNormalizer(base_url='https://lu.ma', calendar_slug='agivc')


def embedded(payload):
    return RawItem(source=EMBEDDED_STATE, payload=payload)


class TestEventNormalizer:
    """Test cases for EventNormalizer class."""

    def test_normalize_wrapped_featured_item(self, normalizer, now):
        """Test the nested event wrapper is unwrapped before field access."""
        raw = embedded({
            'api_id': 'wrapper-id',
            'event': {
                'api_id': 'evt-123',
                'name': 'Live Demo Night',
                'start_at': '2025-04-01T18:00:00.000Z',
                'cover_url': 'https://images.lumacdn.com/cover.png',
                'url': 'demo-night',
            },
        })

        event = normalizer.normalize(raw, now)

        assert event.id == 'evt-123'
        assert event.name == 'Live Demo Night'
        assert event.start_at == '2025-04-01T18:00:00.000Z'
        assert event.cover_url == 'https://images.lumacdn.com/cover.png'
        assert event.url == 'https://lu.ma/demo-night'

    def test_secondary_id_and_alternate_start(self, normalizer, now):
        """Test fallback to the secondary id and startDate fields."""
        raw = embedded({'id': 42, 'name': 'Flat Event', 'startDate': '2025-04-02T10:00:00Z'})

        event = normalizer.normalize(raw, now)

        assert event.id == '42'
        assert event.start_at == '2025-04-02T10:00:00Z'
        assert event.url == 'https://lu.ma/42'

    def test_wrapper_level_start(self, normalizer, now):
        """Test the wrapper's start_at is used when the event has none."""
        raw = embedded({
            'start_at': '2025-04-03T10:00:00Z',
            'event': {'api_id': 'evt-9', 'name': 'Wrapped'},
        })

        assert normalizer.normalize(raw, now).start_at == '2025-04-03T10:00:00Z'

    def test_cover_fallback_chain(self, normalizer, now):
        """Test social image, generic image, then placeholder."""
        social = embedded({'api_id': 'a', 'name': 'A', 'start_at': '2025-04-01T00:00:00Z',
                           'social_image_url': '/social.png', 'image': '/image.png'})
        generic = embedded({'api_id': 'b', 'name': 'B', 'start_at': '2025-04-01T00:00:00Z',
                            'image': '/image.png'})
        bare = embedded({'api_id': 'c', 'name': 'C', 'start_at': '2025-04-01T00:00:00Z'})

        assert normalizer.normalize(social, now).cover_url == '/social.png'
        assert normalizer.normalize(generic, now).cover_url == '/image.png'
        assert normalizer.normalize(bare, now).cover_url == '/placeholder.jpg'

    def test_absolute_url_kept(self, normalizer, now):
        """Test absolute event links are not re-based."""
        raw = embedded({'api_id': 'a', 'name': 'A', 'start_at': '2025-04-01T00:00:00Z',
                        'url': 'https://example.com/event/a'})

        assert normalizer.normalize(raw, now).url == 'https://example.com/event/a'

    def test_missing_start_uses_now(self, normalizer, now):
        """Test a missing start time is replaced by the normalization time."""
        raw = embedded({'api_id': 'evt-1', 'name': 'No Time'})

        event = normalizer.normalize(raw, now)

        assert event.start_at == '2025-03-01T12:00:00.000Z'
        assert event.start_datetime == now

    def test_invalid_start_rejected(self, normalizer, now):
        """Test an unparseable start time rejects the item."""
        raw = embedded({'api_id': 'evt-1', 'name': 'Bad Time', 'start_at': 'next tuesday'})

        assert normalizer.normalize(raw, now) is None

    @pytest.mark.parametrize('payload', [
        {},
        {'start_at': '2025-04-01T00:00:00Z'},
        {'event': {'cover_url': '/x.png'}},
        {'api_id': '', 'name': ''},
    ])
    def test_missing_id_and_name_rejected(self, normalizer, now, payload):
        """Test items without identifiers and names produce no event."""
        assert normalizer.normalize(embedded(payload), now) is None

    def test_missing_name_rejected(self, normalizer, now):
        """Test an item with an id but no name is rejected."""
        assert normalizer.normalize(embedded({'api_id': 'evt-1'}), now) is None

    def test_missing_id_rejected_for_embedded_state(self, normalizer, now):
        """Test an embedded-state item with a name but no id is rejected."""
        assert normalizer.normalize(embedded({'name': 'Anonymous'}), now) is None

    def test_linked_data_event(self, normalizer, now):
        """Test schema.org fields map onto the canonical record."""
        raw = RawItem(source=LINKED_DATA, payload={
            '@type': 'Event',
            'identifier': 'ld-1',
            'name': 'Structured Event',
            'startDate': '2025-05-01T10:00:00-04:00',
            'image': ['https://images.example.com/ld.jpg'],
            'url': 'https://lu.ma/structured',
        })

        event = normalizer.normalize(raw, now)

        assert event.id == 'ld-1'
        assert event.cover_url == 'https://images.example.com/ld.jpg'
        assert event.url == 'https://lu.ma/structured'

    def test_linked_data_id_from_url_slug(self, normalizer, now):
        """Test linked data without identifier uses the url slug."""
        raw = RawItem(source=LINKED_DATA, payload={
            'name': 'Slugged', 'startDate': '2025-05-01', 'url': 'https://lu.ma/slugged-event',
            'image': {'@type': 'ImageObject', 'url': '/img.png'},
        })

        event = normalizer.normalize(raw, now)

        assert event.id == 'slugged-event'
        assert event.cover_url == '/img.png'

    def test_linked_data_generated_id(self, normalizer, now):
        """Test linked data without id or url gets a timestamp-based id and the calendar link."""
        raw = RawItem(source=LINKED_DATA, payload={'name': 'Bare', 'startDate': '2025-05-01'})

        event = normalizer.normalize(raw, now)

        assert event.id.startswith(str(int(now.timestamp() * 1000)))
        assert event.url == 'https://lu.ma/agivc'
        assert event.cover_url == '/placeholder.jpg'

    def test_dom_card_passthrough(self, normalizer, now):
        """Test enriched DOM cards keep their canonical fields."""
        raw = RawItem(source=DOM_CARD, payload={
            'id': 'evt-a', 'name': 'Demo Night', 'start_at': '2025-02-10T18:00:00.000Z',
            'cover_url': '/c.jpg', 'url': 'https://lu.ma/demo-night',
        })

        event = normalizer.normalize(raw, now)

        assert event.to_dict() == raw.payload

    def test_unknown_source_rejected(self, normalizer, now):
        """Test items from an unknown source are dropped."""
        assert normalizer.normalize(RawItem(source='rss', payload={'name': 'x'}), now) is None

    def test_normalize_all_skips_invalid(self, normalizer, now):
        """Test batch normalization keeps only valid events in order."""
        raws = [
            embedded({'api_id': 'a', 'name': 'A', 'start_at': '2025-04-01T00:00:00Z'}),
            embedded({'api_id': 'b'}),
            embedded({'api_id': 'c', 'name': 'C', 'start_at': '2025-04-02T00:00:00Z'}),
        ]

        events = normalizer.normalize_all(raws, now)

        assert [event.id for event in events] == ['a', 'c']

    def test_normalize_all_defaults_to_current_time(self, normalizer):
        """Test missing start times use the wall clock when no time is given."""
        before = datetime.now(timezone.utc).replace(microsecond=0)

        events = normalizer.normalize_all([embedded({'api_id': 'a', 'name': 'A'})])

        assert events[0].start_datetime >= before
