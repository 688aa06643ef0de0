"""Calendar feed backed by the Events Manager store."""
import logging
from typing import Callable, List, Optional

from feeds.base import CalendarFeed
from feeds.converter import ReadConverter
from feeds.identity import IdentityResolver
from feeds.models import Event, SaveResult
from feeds.notifications import DELETED, SAVED, NotificationBroker
from feeds.permissions import PermissionGate
from feeds.reconciler import WriteReconciler

logger = logging.getLogger(__name__)


class EventsManagerFeed(CalendarFeed):
    """Reads and writes canonical events through an EventsManagerStore."""

    IDENTIFIER = 'events-manager'

    def __init__(
        self,
        store,
        authorizer,
        capabilities=None,
        geocoder=None,
        delete_permanently: bool = False
    ):
        """
        Args:
            store: EventsManagerStore holding the native records
            authorizer: Object with can_manage(self_cap, others_cap, user, owner)
            capabilities: Capability names, Events Manager defaults when None
            geocoder: Optional location geocoder
            delete_permanently: Delete rows instead of trashing them
        """
        self.store = store
        self.identity = IdentityResolver(store)
        self.converter = ReadConverter(store, self.IDENTIFIER)
        self.broker = NotificationBroker(store.signals)
        self.reconciler = WriteReconciler(
            store,
            self.identity,
            PermissionGate(authorizer, capabilities),
            self.broker,
            geocoder=geocoder,
            delete_permanently=delete_permanently
        )

    @property
    def identifier(self) -> str:
        return self.IDENTIFIER

    @property
    def description(self) -> str:
        return 'Events Manager'

    def is_feed_available(self) -> bool:
        return self.store.is_available()

    def init(self) -> None:
        logger.info(f"Feed '{self.identifier}' ready on table {self.store.table_name}")

    def list_events(
        self,
        start: int,
        end: int,
        category_slug: Optional[str] = None
    ) -> List[Event]:
        return self.converter.list(start, end, category_slug)

    def get_event(self, uid: str) -> Optional[Event]:
        native = self.identity.find_event(uid)
        if native is None:
            return None
        return self.converter.convert(native, self.store.get_post(native['post_id']))

    def get_event_by_event_id(self, event_id: int) -> Optional[Event]:
        """Event by native id, None when absent or trashed."""
        native = self.store.get_event(event_id)
        if native is None:
            return None
        return self.converter.convert(native, self.store.get_post(native['post_id']))

    def save_event(self, event: Event) -> SaveResult:
        return self.reconciler.save(event)

    def delete_event(self, uid: str) -> None:
        self.reconciler.delete(uid)

    def subscribe_saved(self, listener: Callable[[int], None]) -> None:
        self.broker.subscribe(SAVED, listener)

    def subscribe_deleted(self, listener: Callable[[int], None]) -> None:
        self.broker.subscribe(DELETED, listener)
