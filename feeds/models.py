"""Canonical data models shared by every calendar feed."""
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass
class Category:
    """Event category term."""
    name: str
    slug: str


@dataclass
class Tag:
    """Event tag term."""
    name: str
    slug: str


@dataclass
class Location:
    """Event venue. Identity is established by fuzzy match, not by key."""
    name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = None
    longitude: Optional[float] = None
    latitude: Optional[float] = None

    def is_empty(self) -> bool:
        """True when no field carries a value."""
        return all(value in (None, '') for value in asdict(self).values())

    def full_address(self) -> str:
        """Compose the postal address parts into one free-text string."""
        parts = [self.address, self.city, self.state, self.zip, self.country]
        return ', '.join(part for part in parts if part)


@dataclass
class Event:
    """Backend-agnostic calendar event."""
    uid: str
    title: str
    start_date: int
    end_date: int
    description: Optional[str] = None
    excerpt: Optional[str] = None
    link: Optional[str] = None
    all_day: bool = False
    event_id: Optional[int] = None
    blog_id: Optional[int] = None
    published_date: Optional[int] = None
    updated_date: Optional[int] = None
    owner_user_id: Optional[int] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_website: Optional[str] = None
    image_url: Optional[str] = None
    cost: Optional[str] = None
    categories: List[Category] = field(default_factory=list)
    tags: List[Tag] = field(default_factory=list)
    location: Optional[Location] = None
    plugin: Optional[str] = None

    def __post_init__(self):
        if not self.uid:
            raise ValueError("Event uid must not be empty")
        if self.end_date < self.start_date:
            raise ValueError(
                f"Event '{self.uid}' ends before it starts "
                f"({self.end_date} < {self.start_date})"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to plain JSON-compatible types."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Event':
        """
        Build an Event from a plain dictionary.

        Args:
            data: Mapping as produced by to_dict() or sent by the host

        Returns:
            Event instance

        Raises:
            KeyError: If uid, title, start_date or end_date is missing
            ValueError: If the schedule is inconsistent
        """
        location = data.get('location')
        return cls(
            uid=data['uid'],
            title=data['title'],
            start_date=int(data['start_date']),
            end_date=int(data['end_date']),
            description=data.get('description'),
            excerpt=data.get('excerpt'),
            link=data.get('link'),
            all_day=bool(data.get('all_day', False)),
            event_id=data.get('event_id'),
            blog_id=data.get('blog_id'),
            published_date=data.get('published_date'),
            updated_date=data.get('updated_date'),
            owner_user_id=data.get('owner_user_id'),
            contact_name=data.get('contact_name'),
            contact_email=data.get('contact_email'),
            contact_phone=data.get('contact_phone'),
            contact_website=data.get('contact_website'),
            image_url=data.get('image_url'),
            cost=data.get('cost'),
            categories=[Category(**c) for c in data.get('categories') or []],
            tags=[Tag(**t) for t in data.get('tags') or []],
            location=Location(**location) if location else None,
            plugin=data.get('plugin'),
        )


class SaveErrorKind(Enum):
    """Why a save did not complete."""
    PERMISSION_DENIED = "permission_denied"
    BACKEND_WRITE_FAILURE = "backend_write_failure"


@dataclass
class SaveResult:
    """
    Outcome of a save operation.

    event_id and post_id are recorded as soon as the primary record is
    persisted, so they remain set when a later step fails.
    """
    error: Optional[str] = None
    error_kind: Optional[SaveErrorKind] = None
    event_id: Optional[int] = None
    post_id: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.error is None

    def has_error(self) -> bool:
        return self.error is not None

    def set_error(self, message: str, kind: SaveErrorKind) -> None:
        self.error = message
        self.error_kind = kind
