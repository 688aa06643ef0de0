"""Read side: native Events Manager rows to canonical events."""
import logging
from typing import Any, Dict, List, Optional

from feeds.models import Category, Event, Location, Tag
from storage.dynamodb_backend import CATEGORY_TAXONOMY, TAG_TAXONOMY

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400

CONTACT_META_KEYS = {
    'contact_name': '_contact_name',
    'contact_email': '_contact_email',
    'contact_phone': '_contact_phone',
    'contact_website': '_contact_website',
}


def _text(value: Any) -> Optional[str]:
    """Empty backend values become None."""
    if value is None or value == '':
        return None
    return str(value)


class ReadConverter:
    """Builds canonical Event objects from native event and post rows."""

    def __init__(self, store, plugin: str):
        self.store = store
        self.plugin = plugin

    def convert(
        self,
        native_event: Dict[str, Any],
        native_post: Optional[Dict[str, Any]]
    ) -> Optional[Event]:
        """
        Convert a native event and its post into a canonical Event.

        Events of another tenant are read with that tenant switched in;
        the previous tenant is restored afterwards.

        Args:
            native_event: Event row
            native_post: Post row of the event, None if it could not be loaded

        Returns:
            Event, or None for trashed events and events without a post
        """
        if native_event.get('post_status') == 'trash':
            return None

        tenants = self.store.tenants
        blog_id = native_event.get('blog_id')
        if tenants.multisite and blog_id and blog_id != tenants.current:
            with tenants.switched(blog_id):
                post = self.store.get_post(native_event['post_id'])
                return self._build(native_event, post)
        return self._build(native_event, native_post)

    def _build(
        self,
        native_event: Dict[str, Any],
        post: Optional[Dict[str, Any]]
    ) -> Optional[Event]:
        if post is None:
            logger.warning(
                f"Event {native_event.get('event_id')} has no post "
                f"{native_event.get('post_id')}, skipping"
            )
            return None
        if post.get('post_status') == 'trash':
            return None

        post_id = post['post_id']
        contact = {
            field: self.store.get_meta(post_id, key)
            for field, key in CONTACT_META_KEYS.items()
        }

        try:
            start = self.store.combine_timestamp(
                native_event['event_start_date'], native_event.get('event_start_time')
            )
            end = self.store.combine_timestamp(
                native_event['event_end_date'], native_event.get('event_end_time')
            )
            return Event(
                uid=native_event['event_slug'],
                event_id=native_event['event_id'],
                blog_id=native_event.get('blog_id'),
                title=native_event['event_name'],
                description=_text(post.get('post_content')),
                excerpt=_text(post.get('post_excerpt')),
                link=self.store.permalink(post),
                start_date=start,
                end_date=end,
                all_day=bool(native_event.get('event_all_day')),
                published_date=self.store.parse_post_date(post.get('post_date')),
                updated_date=self.store.parse_post_date(post.get('post_modified')),
                owner_user_id=native_event.get('event_owner'),
                contact_name=_text(contact['contact_name'] or native_event.get('event_owner_name')),
                contact_email=_text(contact['contact_email'] or native_event.get('event_owner_email')),
                contact_phone=_text(contact['contact_phone']),
                contact_website=_text(contact['contact_website']),
                image_url=_text(post.get('thumbnail_url')),
                cost=self._cost(native_event),
                categories=[
                    Category(name=t['name'], slug=t['slug']) for t in self.store.get_terms(
                        native_event.get('category_ids') or [], CATEGORY_TAXONOMY
                    )
                ],
                tags=[
                    Tag(name=t['name'], slug=t['slug']) for t in self.store.get_terms(
                        native_event.get('tag_ids') or [], TAG_TAXONOMY
                    )
                ],
                location=self._location(native_event.get('location_id')),
                plugin=self.plugin,
            )
        except (KeyError, ValueError) as e:
            logger.warning(f"Malformed event {native_event.get('event_id')}: {e}")
            return None

    def _location(self, location_id: Optional[int]) -> Optional[Location]:
        if not location_id:
            return None
        native = self.store.get_location(location_id)
        if native is None:
            return None

        longitude = native.get('location_longitude')
        latitude = native.get('location_latitude')
        location = Location(
            name=_text(native.get('location_name')),
            address=_text(native.get('location_address')),
            city=_text(native.get('location_town')),
            state=_text(native.get('location_state')),
            zip=_text(native.get('location_postcode')),
            country=_text(native.get('location_country')),
            longitude=float(longitude) if longitude is not None else None,
            latitude=float(latitude) if latitude is not None else None,
        )
        return None if location.is_empty() else location

    @staticmethod
    def _cost(native_event: Dict[str, Any]) -> Optional[str]:
        price = native_event.get('event_price')
        if not price and not native_event.get('event_rsvp'):
            return 'FREE'
        return _text(price)

    def list(
        self,
        start: int,
        end: int,
        category_slug: Optional[str] = None
    ) -> List[Event]:
        """
        Published events overlapping the calendar days from start to end.

        The scope runs through the day after end's day. A comma-separated
        category_slug matches events in any of the categories.

        Args:
            start: Epoch seconds
            end: Epoch seconds
            category_slug: One slug or several joined by commas

        Returns:
            Canonical events ordered by start
        """
        scope_start = self.store.date_of(start)
        scope_end = self.store.date_of(end + SECONDS_PER_DAY)

        category_ids = None
        if category_slug:
            category_ids = []
            for slug in category_slug.split(','):
                slug = slug.strip()
                term = self.store.find_term(slug, CATEGORY_TAXONOMY) if slug else None
                if term:
                    category_ids.append(term['term_id'])
                elif slug:
                    logger.debug(f"Unknown category '{slug}'")

        natives = self.store.find_events(
            ('publish',), scope_start, scope_end, category_ids
        )
        events = []
        for native in natives:
            event = self.convert(native, self.store.get_post(native['post_id']))
            if event:
                events.append(event)

        logger.info(
            f"Listed {len(events)} events between {scope_start} and {scope_end}"
        )
        return events
