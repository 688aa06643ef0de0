"""Publish/subscribe primitive used by the storage backend."""
import logging
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)


class SignalHub:
    """Named signals with ordered receivers."""

    def __init__(self):
        self._receivers: Dict[str, List[Callable]] = {}

    def connect(self, signal: str, receiver: Callable) -> None:
        """Register receiver for signal. Receivers run in connect order."""
        self._receivers.setdefault(signal, []).append(receiver)

    def is_connected(self, signal: str, receiver: Callable) -> bool:
        return receiver in self._receivers.get(signal, [])

    def send(self, signal: str, **payload) -> None:
        """
        Invoke every receiver of signal with payload as keyword arguments.

        Args:
            signal: Signal name
            **payload: Keyword arguments passed to each receiver
        """
        receivers = list(self._receivers.get(signal, []))
        logger.debug(f"Sending '{signal}' to {len(receivers)} receivers")
        for receiver in receivers:
            receiver(**payload)
