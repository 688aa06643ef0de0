"""DynamoDB storage shaped like the Events Manager calendar plugin."""
import logging
import re
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

from feeds.errors import BackendWriteError
from storage.signals import SignalHub
from storage.tenancy import TenantContext

logger = logging.getLogger(__name__)

CATEGORY_TAXONOMY = 'event-categories'
TAG_TAXONOMY = 'event-tags'

LIVE_STATUSES = ('draft', 'pending', 'publish')

# Columns that live on the post row rather than the event row.
POST_FIELDS = (
    'post_content', 'post_excerpt', 'post_status', 'post_author',
    'thumbnail_url',
)

_TERM_ATTRIBUTES = {
    CATEGORY_TAXONOMY: 'category_ids',
    TAG_TAXONOMY: 'tag_ids',
}


def sanitize_slug(text: str) -> str:
    """Lower-case, url-safe form of text."""
    return re.sub(r'[^a-z0-9]+', '-', text.lower()).strip('-')


class EventsManagerStore:
    """
    Events, posts, locations, taxonomy terms, post metadata and options in
    a single DynamoDB table keyed by ``record_key``.

    Events and locations carry a global numeric id and point at a post row
    that belongs to one tenant. Every event save, location save and term
    binding sends the ``saved`` signal; deletes send ``deleted``.
    """

    DATE_FORMAT = '%Y-%m-%d'
    TIME_FORMAT = '%H:%M:%S'
    POST_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
    TRASH_SUFFIX = '__trashed'

    def __init__(
        self,
        table_name: str,
        tenants: Optional[TenantContext] = None,
        signals: Optional[SignalHub] = None,
        site_url: str = 'https://example.org',
        site_urls: Optional[Dict[int, str]] = None,
        timezone: str = 'UTC',
        region_name: Optional[str] = None
    ):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table
            tenants: Tenant context shared with the host
            signals: Signal hub receiving native saved/deleted signals
            site_url: Base URL of the primary tenant
            site_urls: Base URL per tenant id, overrides site_url
            timezone: IANA zone used for the date/time columns
            region_name: AWS region, defaults to the environment
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)
        self.tenants = tenants or TenantContext()
        self.signals = signals or SignalHub()
        self.site_url = site_url.rstrip('/')
        self.site_urls = site_urls or {}
        self.tz = ZoneInfo(timezone)
        logger.info(f"Initialized EventsManagerStore for table: {table_name}")

    def is_available(self) -> bool:
        """True when the backing table exists and is reachable."""
        try:
            self.table.load()
            return True
        except ClientError as e:
            logger.warning(f"Table {self.table_name} is not available: {e}")
            return False

    # -- time columns --------------------------------------------------

    def split_timestamp(self, timestamp: int) -> Tuple[str, str]:
        """Split an epoch timestamp into local date and time-of-day columns."""
        local = datetime.fromtimestamp(timestamp, self.tz)
        return local.strftime(self.DATE_FORMAT), local.strftime(self.TIME_FORMAT)

    def combine_timestamp(self, date_str: str, time_str: Optional[str]) -> int:
        """Inverse of split_timestamp."""
        combined = datetime.strptime(
            f"{date_str} {time_str or '00:00:00'}",
            f"{self.DATE_FORMAT} {self.TIME_FORMAT}"
        )
        return int(combined.replace(tzinfo=self.tz).timestamp())

    def date_of(self, timestamp: int) -> str:
        return self.split_timestamp(timestamp)[0]

    def parse_post_date(self, value: Optional[str]) -> Optional[int]:
        if not value:
            return None
        parsed = datetime.strptime(value, self.POST_DATE_FORMAT)
        return int(parsed.replace(tzinfo=self.tz).timestamp())

    def _now(self) -> str:
        return datetime.now(self.tz).strftime(self.POST_DATE_FORMAT)

    # -- posts ---------------------------------------------------------

    def _post_key(self, post_id: int, blog_id: Optional[int] = None) -> str:
        if blog_id is None:
            blog_id = self.tenants.current
        return f"post#{blog_id}#{post_id}"

    def get_post(self, post_id: int) -> Optional[Dict[str, Any]]:
        """Post row in the current tenant, or None."""
        return self._get(self._post_key(post_id))

    def find_posts(
        self,
        post_type: str,
        name: str,
        statuses: Iterable[str],
        blog_id: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Find posts by slug and lifecycle state, newest first.

        Args:
            post_type: 'event' or 'location'
            name: Post slug
            statuses: Accepted post_status values
            blog_id: Restrict to one tenant, any tenant when None

        Returns:
            Matching post rows
        """
        condition = (
            Attr('record_type').eq('post')
            & Attr('post_type').eq(post_type)
            & Attr('post_name').eq(name)
            & Attr('post_status').is_in(list(statuses))
        )
        if blog_id is not None:
            condition = condition & Attr('blog_id').eq(blog_id)
        posts = self._scan(condition)
        posts.sort(
            key=lambda p: (p.get('post_date', ''), p['post_id']), reverse=True
        )
        return posts

    def update_post(self, post_id: int, fields: Dict[str, Any]) -> None:
        """Update columns of a post row in the current tenant."""
        fields = dict(fields, post_modified=self._now())
        self._update(self._post_key(post_id), fields)

    def permalink(self, post: Dict[str, Any]) -> str:
        """Public URL of a post, relative to the current tenant's site."""
        tenant = self.tenants.current
        base = self.site_urls.get(tenant)
        if base is None:
            base = self.site_url if tenant == 1 else f"{self.site_url}/sites/{tenant}"
        section = 'locations' if post.get('post_type') == 'location' else 'events'
        return f"{base.rstrip('/')}/{section}/{post['post_name']}/"

    def _slug_taken(self, slug: str, blog_id: int, post_id: Optional[int]) -> bool:
        condition = (
            Attr('record_type').eq('post')
            & Attr('post_type').eq('event')
            & Attr('blog_id').eq(blog_id)
            & Attr('post_name').eq(slug)
        )
        return any(p['post_id'] != post_id for p in self._scan(condition))

    def _unique_slug(self, base: str, blog_id: int, post_id: Optional[int]) -> str:
        slug = sanitize_slug(base) or 'event'
        candidate = slug
        suffix = 2
        while self._slug_taken(candidate, blog_id, post_id):
            candidate = f"{slug}-{suffix}"
            suffix += 1
        return candidate

    # -- events --------------------------------------------------------

    def get_event(self, event_id: int) -> Optional[Dict[str, Any]]:
        return self._get(f"event#{event_id}")

    def get_event_by_post(
        self, post_id: int, blog_id: Optional[int] = None
    ) -> Optional[Dict[str, Any]]:
        if blog_id is None:
            blog_id = self.tenants.current
        events = self._scan(
            Attr('record_type').eq('event')
            & Attr('post_id').eq(post_id)
            & Attr('blog_id').eq(blog_id)
        )
        return events[0] if events else None

    def find_events(
        self,
        statuses: Iterable[str],
        scope_start: str,
        scope_end: str,
        category_ids: Optional[List[int]] = None
    ) -> List[Dict[str, Any]]:
        """
        Find events overlapping a date scope, ordered by start.

        Args:
            statuses: Accepted post_status values
            scope_start: First day of the scope (YYYY-MM-DD, inclusive)
            scope_end: Last day of the scope (YYYY-MM-DD, inclusive)
            category_ids: Keep events bound to any of these terms

        Returns:
            Matching event rows
        """
        condition = (
            Attr('record_type').eq('event')
            & Attr('post_status').is_in(list(statuses))
            & Attr('event_start_date').lte(scope_end)
            & Attr('event_end_date').gte(scope_start)
        )
        if category_ids is not None:
            if not category_ids:
                return []
            any_category = Attr('category_ids').contains(category_ids[0])
            for term_id in category_ids[1:]:
                any_category = any_category | Attr('category_ids').contains(term_id)
            condition = condition & any_category
        events = self._scan(condition)
        events.sort(key=lambda e: (e.get('event_start', 0), e['event_id']))
        return events

    def save_event(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create or update an event and its post row.

        New events get a slug derived from event_slug or, failing that,
        the event name, made unique within the tenant. An existing event
        keeps its stored slug unchanged.

        Args:
            record: Event columns plus any POST_FIELDS to write

        Returns:
            The stored event row

        Raises:
            BackendWriteError: If validation or the DynamoDB write fails
        """
        if not record.get('event_name'):
            raise BackendWriteError("Event name is required")
        if not record.get('event_start_date') or not record.get('event_end_date'):
            raise BackendWriteError("Event start and end dates are required")

        event = {k: v for k, v in record.items() if k not in POST_FIELDS}
        is_new = not event.get('event_id')
        now = self._now()

        if is_new:
            event['blog_id'] = event.get('blog_id') or self.tenants.current
            event['event_id'] = self._next_id('event')
            event['post_id'] = self._next_id('post')
            post = {
                'post_type': 'event',
                'post_date': now,
                'post_status': 'publish',
                'post_author': record.get('event_owner'),
            }
            event['event_slug'] = self._unique_slug(
                event.get('event_slug') or event['event_name'], event['blog_id'], None
            )
        else:
            with self.tenants.switched(event['blog_id']):
                post = self.get_post(event['post_id']) or {'post_type': 'event'}
            event['event_slug'] = event.get('event_slug') or post.get('post_name') \
                or self._unique_slug(event['event_name'], event['blog_id'], event['post_id'])

        post.update({k: record[k] for k in POST_FIELDS if k in record})
        post.setdefault('post_status', 'publish')
        post.update({
            'record_key': self._post_key(event['post_id'], event['blog_id']),
            'record_type': 'post',
            'post_id': event['post_id'],
            'blog_id': event['blog_id'],
            'post_name': event['event_slug'],
            'post_title': event['event_name'],
            'post_modified': now,
        })
        event['post_status'] = post['post_status']
        event['record_key'] = f"event#{event['event_id']}"
        event['record_type'] = 'event'

        self._put(post)
        self._put(event)
        logger.info(
            f"{'Created' if is_new else 'Updated'} event {event['event_id']} "
            f"(post {event['post_id']}, slug '{event['event_slug']}')"
        )
        self.signals.send('saved', record_type='event', record_id=event['event_id'])
        return self._from_item(self._to_item(event))

    def update_event_fields(self, event_id: int, fields: Dict[str, Any]) -> None:
        self._update(f"event#{event_id}", fields)

    def delete_event(self, event_id: int, permanent: bool = False) -> bool:
        """
        Trash or permanently delete an event.

        Args:
            event_id: Native event id
            permanent: Remove the rows instead of moving them to trash

        Returns:
            False when no such event exists
        """
        event = self.get_event(event_id)
        if event is None:
            return False

        post_key = self._post_key(event['post_id'], event['blog_id'])
        try:
            if permanent:
                self.table.delete_item(Key={'record_key': post_key})
                self.table.delete_item(Key={'record_key': event['record_key']})
            else:
                trashed_slug = f"{event['event_slug']}{self.TRASH_SUFFIX}"
                self._update(post_key, {
                    'post_status': 'trash',
                    'post_name': trashed_slug,
                    'post_modified': self._now(),
                })
                self._update(event['record_key'], {
                    'post_status': 'trash',
                    'event_slug': trashed_slug,
                })
        except ClientError as e:
            logger.error(f"Error deleting event {event_id}: {e}")
            raise BackendWriteError(str(e)) from e

        logger.info(f"{'Deleted' if permanent else 'Trashed'} event {event_id}")
        self.signals.send('deleted', record_type='event', record_id=event_id)
        return True

    # -- locations -----------------------------------------------------

    def get_location(self, location_id: int) -> Optional[Dict[str, Any]]:
        return self._get(f"location#{location_id}")

    def find_locations(
        self,
        filters: Dict[str, str],
        search: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Find active locations of the current tenant.

        Args:
            filters: Column name to exact value
            search: Case-insensitive substring of the composed address

        Returns:
            Matching location rows ordered by id
        """
        condition = (
            Attr('record_type').eq('location')
            & Attr('blog_id').eq(self.tenants.current)
            & Attr('location_status').eq(1)
        )
        for column, value in filters.items():
            condition = condition & Attr(column).eq(value)
        if search:
            condition = condition & Attr('search_text').contains(search.lower())
        locations = self._scan(condition)
        locations.sort(key=lambda loc: loc['location_id'])
        return locations

    def save_location(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create or update a location and its post row.

        Raises:
            BackendWriteError: If validation or the DynamoDB write fails
        """
        if not record.get('location_name'):
            raise BackendWriteError("Location name is required")

        location = {k: v for k, v in record.items() if k not in POST_FIELDS}
        is_new = not location.get('location_id')
        if is_new:
            location['blog_id'] = location.get('blog_id') or self.tenants.current
            location['location_id'] = self._next_id('location')
            location['post_id'] = self._next_id('post')
            location.setdefault('location_status', 1)
            location['location_slug'] = sanitize_slug(location['location_name'])

        parts = [
            location.get(column) for column in (
                'location_address', 'location_town', 'location_state',
                'location_postcode', 'location_country',
            )
        ]
        location['search_text'] = ', '.join(p for p in parts if p).lower()
        location['record_key'] = f"location#{location['location_id']}"
        location['record_type'] = 'location'

        post = {
            'record_key': self._post_key(location['post_id'], location['blog_id']),
            'record_type': 'post',
            'post_type': 'location',
            'post_id': location['post_id'],
            'blog_id': location['blog_id'],
            'post_name': location['location_slug'],
            'post_title': location['location_name'],
            'post_status': record.get('post_status', 'publish'),
            'post_author': record.get('post_author', location.get('owner')),
            'post_content': record.get('post_content', ''),
            'post_modified': self._now(),
        }
        if is_new:
            post['post_date'] = post['post_modified']

        self._put(post)
        self._put(location)
        logger.info(
            f"{'Created' if is_new else 'Updated'} location "
            f"{location['location_id']} '{location['location_name']}'"
        )
        self.signals.send(
            'saved', record_type='location', record_id=location['location_id']
        )
        return self._from_item(self._to_item(location))

    # -- taxonomy terms ------------------------------------------------

    def find_term(self, slug: str, taxonomy: str) -> Optional[Dict[str, Any]]:
        return self._get(f"term#{taxonomy}#{sanitize_slug(slug)}")

    def create_term(self, name: str, slug: str, taxonomy: str) -> Dict[str, Any]:
        """
        Insert a new taxonomy term.

        Raises:
            BackendWriteError: If the name is empty or the slug exists
        """
        if not name:
            raise BackendWriteError(f"Term name is required in {taxonomy}")
        slug = sanitize_slug(slug or name)
        term = {
            'record_key': f"term#{taxonomy}#{slug}",
            'record_type': 'term',
            'taxonomy': taxonomy,
            'term_id': self._next_id('term'),
            'name': name,
            'slug': slug,
        }
        try:
            self.table.put_item(
                Item=term,
                ConditionExpression='attribute_not_exists(record_key)'
            )
        except ClientError as e:
            logger.error(f"Error creating term '{slug}' in {taxonomy}: {e}")
            raise BackendWriteError(f"Could not create term '{slug}': {e}") from e
        logger.info(f"Created term {term['term_id']} '{slug}' in {taxonomy}")
        return term

    def get_terms(self, term_ids: List[int], taxonomy: str) -> List[Dict[str, Any]]:
        """Terms of taxonomy with the given ids, in the order of term_ids."""
        if not term_ids:
            return []
        terms = self._scan(
            Attr('record_type').eq('term')
            & Attr('taxonomy').eq(taxonomy)
            & Attr('term_id').is_in(list(term_ids))
        )
        by_id = {term['term_id']: term for term in terms}
        return [by_id[term_id] for term_id in term_ids if term_id in by_id]

    def bind_terms(self, event_id: int, taxonomy: str, term_ids: List[int]) -> None:
        """Replace the event's terms of taxonomy with term_ids."""
        self.update_event_fields(event_id, {_TERM_ATTRIBUTES[taxonomy]: list(term_ids)})
        self.signals.send('saved', record_type='event', record_id=event_id)

    # -- metadata and options ------------------------------------------

    def get_meta(self, post_id: int, key: str) -> Optional[str]:
        item = self._get(f"meta#{self.tenants.current}#{post_id}#{key}")
        return item['meta_value'] if item else None

    def set_meta(self, post_id: int, key: str, value: str) -> None:
        self._put({
            'record_key': f"meta#{self.tenants.current}#{post_id}#{key}",
            'record_type': 'meta',
            'post_id': post_id,
            'meta_key': key,
            'meta_value': value,
        })

    def get_option(self, name: str, default: Any = None) -> Any:
        item = self._get(f"option#{name}")
        return item['option_value'] if item else default

    def set_option(self, name: str, value: Any) -> None:
        self._put({
            'record_key': f"option#{name}",
            'record_type': 'option',
            'option_value': value,
        })

    # -- DynamoDB plumbing ---------------------------------------------

    def _next_id(self, kind: str) -> int:
        try:
            response = self.table.update_item(
                Key={'record_key': f"counter#{kind}"},
                UpdateExpression='ADD next_id :one SET record_type = :type',
                ExpressionAttributeValues={':one': 1, ':type': 'counter'},
                ReturnValues='UPDATED_NEW'
            )
        except ClientError as e:
            logger.error(f"Error allocating {kind} id: {e}")
            raise BackendWriteError(str(e)) from e
        return int(response['Attributes']['next_id'])

    def _get(self, record_key: str) -> Optional[Dict[str, Any]]:
        response = self.table.get_item(Key={'record_key': record_key})
        item = response.get('Item')
        return self._from_item(item) if item else None

    def _put(self, record: Dict[str, Any]) -> None:
        try:
            self.table.put_item(Item=self._to_item(record))
        except ClientError as e:
            logger.error(f"Error writing {record.get('record_key')}: {e}")
            raise BackendWriteError(str(e)) from e

    def _update(self, record_key: str, fields: Dict[str, Any]) -> None:
        names = {}
        values = {}
        assignments = []
        for i, (column, value) in enumerate(fields.items()):
            names[f"#f{i}"] = column
            values[f":v{i}"] = self._to_value(value)
            assignments.append(f"#f{i} = :v{i}")
        try:
            self.table.update_item(
                Key={'record_key': record_key},
                UpdateExpression='SET ' + ', '.join(assignments),
                ConditionExpression='attribute_exists(record_key)',
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values
            )
        except ClientError as e:
            logger.error(f"Error updating {record_key}: {e}")
            raise BackendWriteError(f"Could not update {record_key}: {e}") from e

    def _scan(self, condition) -> List[Dict[str, Any]]:
        response = self.table.scan(FilterExpression=condition)
        items = response.get('Items', [])

        # Handle pagination
        while 'LastEvaluatedKey' in response:
            response = self.table.scan(
                FilterExpression=condition,
                ExclusiveStartKey=response['LastEvaluatedKey']
            )
            items.extend(response.get('Items', []))

        return [self._from_item(item) for item in items]

    @classmethod
    def _to_value(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return value
        if isinstance(value, float):
            return Decimal(str(value))
        if isinstance(value, list):
            return [cls._to_value(v) for v in value]
        return value

    @classmethod
    def _to_item(cls, record: Dict[str, Any]) -> Dict[str, Any]:
        return {k: cls._to_value(v) for k, v in record.items() if v is not None}

    @classmethod
    def _from_value(cls, value: Any) -> Any:
        if isinstance(value, Decimal):
            return int(value) if value == value.to_integral_value() else float(value)
        if isinstance(value, list):
            return [cls._from_value(v) for v in value]
        return value

    @classmethod
    def _from_item(cls, item: Dict[str, Any]) -> Dict[str, Any]:
        return {k: cls._from_value(v) for k, v in item.items()}
