"""Abstract base class for calendar feeds."""
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from feeds.models import Event, SaveResult


class CalendarFeed(ABC):
    """Host-facing contract implemented once per calendar backend."""

    @property
    @abstractmethod
    def identifier(self) -> str:
        """Stable feed identifier, e.g. 'events-manager'."""

    @property
    @abstractmethod
    def description(self) -> str:
        """Human readable backend name."""

    @abstractmethod
    def is_feed_available(self) -> bool:
        """True when the backend is installed and reachable."""

    def init(self) -> None:
        """Called once by the registry before the feed is handed out."""

    @abstractmethod
    def list_events(
        self,
        start: int,
        end: int,
        category_slug: Optional[str] = None
    ) -> List[Event]:
        """
        Published events in a time range.

        Args:
            start: Epoch seconds
            end: Epoch seconds, the whole calendar day is included
            category_slug: Category slug, or several joined by commas

        Returns:
            Canonical events
        """

    @abstractmethod
    def get_event(self, uid: str) -> Optional[Event]:
        """Event by uid, None when absent or trashed."""

    @abstractmethod
    def save_event(self, event: Event) -> SaveResult:
        """Create or update event, keyed by uid."""

    @abstractmethod
    def delete_event(self, uid: str) -> None:
        """Delete event by uid. Unknown uids are ignored."""

    @abstractmethod
    def subscribe_saved(self, listener: Callable[[int], None]) -> None:
        """Call listener with the native event id after each save."""

    @abstractmethod
    def subscribe_deleted(self, listener: Callable[[int], None]) -> None:
        """Call listener with the native event id after each delete."""
