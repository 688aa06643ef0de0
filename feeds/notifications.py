"""Listener registry for saved/deleted notifications."""
import logging
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List

logger = logging.getLogger(__name__)

SAVED = 'saved'
DELETED = 'deleted'


class NotificationBroker:
    """
    Per-feed listener registry with a suppression flag.

    The backend's native signals are forwarded to listeners unless
    suppressed; a multi-step write suppresses them and fires once itself.
    """

    def __init__(self, signals):
        self.signals = signals
        self.listeners: Dict[str, List[Callable[[int], None]]] = {
            SAVED: [],
            DELETED: [],
        }
        self.suppressed_flag = False

    def subscribe(self, kind: str, listener: Callable[[int], None]) -> None:
        """
        Register listener for kind ('saved' or 'deleted').

        Raises:
            ValueError: If kind is unknown
        """
        if kind not in self.listeners:
            raise ValueError(f"Unknown notification kind: {kind}")
        self.listeners[kind].append(listener)

        hook = self._on_native_saved if kind == SAVED else self._on_native_deleted
        if not self.signals.is_connected(kind, hook):
            self.signals.connect(kind, hook)

    def set_suppressed(self, suppressed: bool) -> None:
        self.suppressed_flag = suppressed

    @contextmanager
    def suppressed(self) -> Iterator[None]:
        """Withhold notifications inside the block, restoring the flag after."""
        previous = self.suppressed_flag
        self.suppressed_flag = True
        try:
            yield
        finally:
            self.suppressed_flag = previous

    def fire(self, kind: str, record_id: int) -> None:
        """Call every listener of kind in registration order."""
        if self.suppressed_flag:
            logger.debug(f"Suppressed '{kind}' notification for {record_id}")
            return
        for listener in list(self.listeners.get(kind, [])):
            try:
                listener(record_id)
            except Exception as e:
                logger.exception(f"Listener for '{kind}' failed on {record_id}: {e}")

    def _on_native_saved(self, record_type: str, record_id: int) -> None:
        if record_type == 'event':
            self.fire(SAVED, record_id)

    def _on_native_deleted(self, record_type: str, record_id: int) -> None:
        if record_type == 'event':
            self.fire(DELETED, record_id)
