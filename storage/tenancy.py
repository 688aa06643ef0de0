"""Tenant (blog) context for multi-tenant storage."""
import logging
from contextlib import contextmanager
from typing import Iterator, List

logger = logging.getLogger(__name__)


class TenantContext:
    """
    Tracks the active tenant. Reads and writes against per-tenant records
    use whichever tenant is current.
    """

    def __init__(self, tenant_id: int = 1, multisite: bool = False):
        self.multisite = multisite
        self._current = tenant_id
        self._previous: List[int] = []

    @property
    def current(self) -> int:
        return self._current

    def switch(self, tenant_id: int) -> None:
        logger.debug(f"Switching tenant {self._current} -> {tenant_id}")
        self._previous.append(self._current)
        self._current = tenant_id

    def restore(self) -> None:
        if not self._previous:
            return
        self._current = self._previous.pop()
        logger.debug(f"Restored tenant {self._current}")

    @contextmanager
    def switched(self, tenant_id: int) -> Iterator[int]:
        """Switch to tenant_id for the duration of the block."""
        self.switch(tenant_id)
        try:
            yield tenant_id
        finally:
            self.restore()
