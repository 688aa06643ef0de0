"""Locate backend records matching canonical events and locations."""
import logging
from typing import Any, Dict, Optional

from feeds.models import Location
from storage.dynamodb_backend import LIVE_STATUSES

logger = logging.getLogger(__name__)


class IdentityResolver:
    """Maps canonical identities onto native event and location rows."""

    def __init__(self, store):
        self.store = store

    def find_event(self, uid: str, tenant: Optional[int] = None) -> Optional[Dict[str, Any]]:
        """
        Find the live native event whose slug equals uid.

        Trashed records never match. When several posts carry the slug the
        newest one wins.

        Args:
            uid: Canonical event uid
            tenant: Tenant to search, the current one when None

        Returns:
            Native event row or None
        """
        if tenant is None:
            tenant = self.store.tenants.current
        posts = self.store.find_posts('event', uid, LIVE_STATUSES, blog_id=tenant)
        if not posts:
            return None
        if len(posts) > 1:
            logger.warning(
                f"{len(posts)} live events share slug '{uid}', "
                f"using post {posts[0]['post_id']}"
            )
        post = posts[0]
        return self.store.get_event_by_post(post['post_id'], post['blog_id'])

    def find_location(self, candidate: Location) -> Optional[Dict[str, Any]]:
        """
        Fuzzy-match candidate against existing locations.

        First filters on whichever of name, postal code and country are
        set; if nothing matches, searches the composed address as free
        text. Differently spelled addresses can still miss.

        Args:
            candidate: Location to match

        Returns:
            First matching native location row or None
        """
        filters = {}
        if candidate.name:
            filters['location_name'] = candidate.name
        if candidate.zip:
            filters['location_postcode'] = candidate.zip
        if candidate.country:
            filters['location_country'] = candidate.country

        if filters:
            found = self.store.find_locations(filters)
            if found:
                return found[0]

        address = candidate.full_address()
        if address:
            found = self.store.find_locations({}, search=address)
            if found:
                logger.debug(f"Matched location by address '{address}'")
                return found[0]

        return None
