"""Write side: upsert canonical events into the Events Manager store."""
import logging
from typing import Any, Dict, List, Optional

import requests

from feeds.converter import CONTACT_META_KEYS
from feeds.errors import BackendWriteError
from feeds.models import Category, Event, Location, SaveErrorKind, SaveResult, Tag
from feeds.notifications import DELETED, SAVED
from storage.dynamodb_backend import CATEGORY_TAXONOMY, TAG_TAXONOMY

logger = logging.getLogger(__name__)

LOCATION_COLUMNS = {
    'name': 'location_name',
    'address': 'location_address',
    'city': 'location_town',
    'state': 'location_state',
    'zip': 'location_postcode',
    'country': 'location_country',
    'longitude': 'location_longitude',
    'latitude': 'location_latitude',
}


class WriteReconciler:
    """
    Creates or updates a native event with its location, categories, tags
    and contact metadata.

    Steps run in a fixed order and stop at the first error. Nothing already
    written is rolled back: once the event row exists its ids are in the
    SaveResult and one 'saved' notification is fired, whatever happens to
    the later steps.
    """

    def __init__(
        self,
        store,
        identity,
        gate,
        broker,
        geocoder=None,
        delete_permanently: bool = False
    ):
        self.store = store
        self.identity = identity
        self.gate = gate
        self.broker = broker
        self.geocoder = geocoder
        self.delete_permanently = delete_permanently

    def save(self, event: Event) -> SaveResult:
        """
        Upsert event, keyed by its uid.

        Args:
            event: Canonical event to write

        Returns:
            SaveResult; on error, event_id is set if the event row was written
        """
        result = SaveResult()
        user_id = event.owner_user_id

        # TODO: per-uid lock; concurrent saves of one uid can both miss here and create two events.
        existing = self.identity.find_event(event.uid, event.blog_id)
        is_new = existing is None
        owner_id = None if is_new else existing.get('event_owner')

        if not self.gate.can_edit_event(user_id, owner_id):
            result.set_error(
                "No permission for the current user to save events",
                SaveErrorKind.PERMISSION_DENIED
            )
            return result

        if is_new:
            status = 'publish' if self.gate.can_publish_event(user_id) else 'pending'
            record: Dict[str, Any] = {'event_owner': user_id}
            blog_id = event.blog_id or self.store.tenants.current
        else:
            blog_id = existing['blog_id']
            with self.store.tenants.switched(blog_id):
                post = self.store.get_post(existing['post_id']) or {}
            status = post.get('post_status', existing['post_status'])
            record = dict(existing)

        try:
            with self.broker.suppressed(), self.store.tenants.switched(blog_id):
                self._write(event, record, is_new, status, result)
        except BackendWriteError as e:
            logger.error(f"Saving event '{event.uid}' failed: {e}")
            result.set_error(str(e), SaveErrorKind.BACKEND_WRITE_FAILURE)
        finally:
            if result.event_id is not None:
                self.broker.fire(SAVED, result.event_id)

        if result.has_error():
            logger.warning(
                f"Save of '{event.uid}' stopped early (event_id={result.event_id}): "
                f"{result.error}"
            )
        else:
            logger.info(
                f"{'Created' if is_new else 'Updated'} event '{event.uid}' "
                f"as {result.event_id} ({status})"
            )
        return result

    def _write(
        self,
        event: Event,
        record: Dict[str, Any],
        is_new: bool,
        status: str,
        result: SaveResult
    ) -> None:
        user_id = event.owner_user_id

        start_date, start_time = self.store.split_timestamp(event.start_date)
        end_date, end_time = self.store.split_timestamp(event.end_date)
        record.update({
            'event_name': event.title,
            'post_excerpt': event.excerpt,
            'post_content': event.description,
            'post_status': status,
            'event_start_date': start_date,
            'event_start_time': start_time,
            'event_start': self.store.combine_timestamp(start_date, start_time),
            'event_end_date': end_date,
            'event_end_time': end_time,
            'event_end': self.store.combine_timestamp(end_date, end_time),
            'event_all_day': event.all_day,
        })
        if event.image_url:
            record['thumbnail_url'] = event.image_url

        # Related rows are keyed to the event id, so the event goes first.
        saved = self.store.save_event(record)
        result.event_id = saved['event_id']
        result.post_id = saved['post_id']
        record = saved

        # The store derives its own slug on create; the uid must survive it.
        self.store.update_event_fields(result.event_id, {'event_slug': event.uid})
        self.store.update_post(result.post_id, {'post_name': event.uid})
        record['event_slug'] = event.uid

        # Locations are keyed by name; a nameless venue is not stored.
        if event.location and event.location.name \
                and self.store.get_option('locations_enabled', True):
            location = self._save_location(event.location, user_id, result)
            if result.has_error():
                return
            record['location_id'] = location['location_id']

        if event.categories and self.store.get_option('categories_enabled', True):
            category_ids = self._resolve_categories(event.categories, user_id)
            self.store.bind_terms(result.event_id, CATEGORY_TAXONOMY, category_ids)
            record['category_ids'] = category_ids

        if event.tags and self.store.get_option('tags_enabled', True):
            tag_ids = self._resolve_tags(event.tags)
            self.store.bind_terms(result.event_id, TAG_TAXONOMY, tag_ids)
            record['tag_ids'] = tag_ids

        self.store.save_event(record)

        if is_new and user_id is not None:
            self.store.update_post(result.post_id, {'post_author': user_id})

        for field, meta_key in CONTACT_META_KEYS.items():
            value = getattr(event, field)
            if value:
                self.store.set_meta(result.post_id, meta_key, value)

    def _save_location(
        self,
        candidate: Location,
        user_id: Optional[int],
        result: SaveResult
    ) -> Optional[Dict[str, Any]]:
        incoming = {
            column: getattr(candidate, attr)
            for attr, column in LOCATION_COLUMNS.items()
            if getattr(candidate, attr) not in (None, '')
        }

        existing = self.identity.find_location(candidate)
        if existing:
            record = dict(existing)
            record.update(incoming)
            logger.debug(f"Reusing location {existing['location_id']}")
        else:
            record = dict(incoming, location_status=1, post_status='publish', owner=user_id)

        self._geocode(candidate, record)

        if not self.gate.can_publish_location(user_id, record.get('owner')):
            result.set_error(
                "No permission to save the event location",
                SaveErrorKind.PERMISSION_DENIED
            )
            return None

        try:
            return self.store.save_location(record)
        except BackendWriteError as e:
            result.set_error(
                f"Could not save location: {e}", SaveErrorKind.BACKEND_WRITE_FAILURE
            )
            return None

    def _geocode(self, candidate: Location, record: Dict[str, Any]) -> None:
        if self.geocoder is None or record.get('location_longitude') is not None:
            return
        try:
            coordinates = self.geocoder.geocode(candidate)
        except requests.RequestException as e:
            logger.warning(f"Geocoding '{candidate.full_address()}' failed: {e}")
            return
        if coordinates:
            record['location_longitude'], record['location_latitude'] = coordinates

    def _resolve_categories(
        self, categories: List[Category], user_id: Optional[int]
    ) -> List[int]:
        term_ids = []
        for category in categories:
            term = self.store.find_term(category.slug, CATEGORY_TAXONOMY)
            if term is None:
                if not self.gate.can_create_category(user_id):
                    logger.info(f"Skipping category '{category.slug}': no permission to create it")
                    continue
                term = self.store.create_term(category.name, category.slug, CATEGORY_TAXONOMY)
            term_ids.append(term['term_id'])
        return term_ids

    def _resolve_tags(self, tags: List[Tag]) -> List[int]:
        term_ids = []
        for tag in tags:
            term = self.store.find_term(tag.slug, TAG_TAXONOMY)
            if term is None:
                term = self.store.create_term(tag.name, tag.slug, TAG_TAXONOMY)
            term_ids.append(term['term_id'])
        return term_ids

    def delete(self, uid: str, tenant: Optional[int] = None) -> None:
        """
        Delete the live event with slug uid. Unknown uids are ignored.

        Raises:
            BackendWriteError: If the store fails to delete
        """
        existing = self.identity.find_event(uid, tenant)
        if existing is None:
            logger.debug(f"No event '{uid}' to delete")
            return

        event_id = existing['event_id']
        with self.broker.suppressed():
            deleted = self.store.delete_event(event_id, permanent=self.delete_permanently)
        if deleted:
            self.broker.fire(DELETED, event_id)
