"""Registry of the calendar feeds available to the host."""
import logging
from typing import Callable, Dict, Iterable, List, Optional

from feeds.base import CalendarFeed

logger = logging.getLogger(__name__)


class FeedRegistry:
    """
    Holds the configured feeds and hands out the available ones.

    Built once by the host and passed to whoever needs it.
    """

    def __init__(self, candidates: Iterable[CalendarFeed]):
        self._candidates = list(candidates)
        self._feeds: Optional[List[CalendarFeed]] = None

    @classmethod
    def from_config(
        cls,
        enabled: Iterable[str],
        factories: Dict[str, Callable[[], CalendarFeed]]
    ) -> 'FeedRegistry':
        """
        Build a registry from configured feed identifiers.

        Args:
            enabled: Identifiers of the feeds to load, in priority order
            factories: Supported feed variants by identifier

        Returns:
            FeedRegistry with one candidate per enabled identifier

        Raises:
            ValueError: If an identifier has no factory
        """
        candidates = []
        for identifier in enabled:
            factory = factories.get(identifier)
            if factory is None:
                raise ValueError(
                    f"Unknown feed '{identifier}', expected one of {sorted(factories)}"
                )
            candidates.append(factory())
        return cls(candidates)

    def get_feeds(self) -> List[CalendarFeed]:
        """Available feeds; availability is checked once, on first call."""
        if self._feeds is None:
            self._feeds = []
            for feed in self._candidates:
                if feed.is_feed_available():
                    feed.init()
                    self._feeds.append(feed)
                else:
                    logger.info(f"Feed '{feed.identifier}' is not available")
        return list(self._feeds)

    def get_feed(self, identifier: str) -> Optional[CalendarFeed]:
        for feed in self.get_feeds():
            if feed.identifier == identifier:
                return feed
        return None
