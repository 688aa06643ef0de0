"""Capability checks consulted before any backend mutation."""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Set

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Capabilities:
    """Backend-defined capability names."""
    edit_events: str = 'edit_events'
    edit_others_events: str = 'edit_others_events'
    publish_events: str = 'publish_events'
    publish_locations: str = 'publish_locations'
    create_categories: str = 'edit_event_categories'


class CapabilityAuthorizer:
    """
    Grant table from user id to capability names.

    The self capability applies when the acting user owns the record, or
    when the record has no owner yet; otherwise the others capability.
    """

    def __init__(self, grants: Dict[int, Iterable[str]]):
        self.grants: Dict[int, Set[str]] = {
            int(user_id): set(caps) for user_id, caps in grants.items()
        }

    def can_manage(
        self,
        self_capability: str,
        others_capability: str,
        acting_user_id: Optional[int],
        owner_user_id: Optional[int] = None
    ) -> bool:
        if acting_user_id is None:
            return False
        held = self.grants.get(acting_user_id, set())
        if owner_user_id is None or owner_user_id == acting_user_id:
            return self_capability in held
        return others_capability in held


class PermissionGate:
    """Names the capability pairs the write reconciler needs."""

    def __init__(self, authorizer, capabilities: Optional[Capabilities] = None):
        self.authorizer = authorizer
        self.capabilities = capabilities or Capabilities()

    def _check(self, self_cap: str, others_cap: str, user_id, owner_id=None) -> bool:
        allowed = self.authorizer.can_manage(self_cap, others_cap, user_id, owner_id)
        if not allowed:
            logger.info(f"User {user_id} lacks '{self_cap}'/'{others_cap}'")
        return allowed

    def can_edit_event(self, user_id: Optional[int], owner_id: Optional[int] = None) -> bool:
        caps = self.capabilities
        return self._check(caps.edit_events, caps.edit_others_events, user_id, owner_id)

    def can_publish_event(self, user_id: Optional[int]) -> bool:
        caps = self.capabilities
        return self._check(caps.publish_events, caps.publish_events, user_id)

    def can_publish_location(
        self, user_id: Optional[int], owner_id: Optional[int] = None
    ) -> bool:
        caps = self.capabilities
        return self._check(
            caps.publish_locations, caps.publish_locations, user_id, owner_id
        )

    def can_create_category(self, user_id: Optional[int]) -> bool:
        caps = self.capabilities
        return self._check(caps.create_categories, caps.create_categories, user_id)
