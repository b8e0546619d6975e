"""Result types returned by PhonebookService and BackgroundSync."""

from dataclasses import dataclass, field
from datetime import datetime

from phonebook.domain import Contact


@dataclass(frozen=True)
class ContactListing:
    """Contacts returned for one or all address books, after search filtering."""

    contacts: list[Contact]
    total: int
    address_books: list[str] = field(default_factory=list)

    @property
    def filtered(self) -> int:
        return len(self.contacts)


@dataclass(frozen=True)
class AccessDenied:
    """The requested address book is not in the allowed list."""

    address_book: str


@dataclass(frozen=True)
class CacheStatus:
    """One cache entry: how many contacts and how old."""

    contact_count: int
    age_seconds: float

    @property
    def age(self) -> str:
        seconds = int(self.age_seconds)
        return f"{seconds // 60}m {seconds % 60}s"


@dataclass(frozen=True)
class SyncStatus:
    is_running: bool
    interval_minutes: float
    last_sync_at: datetime | None = None
    last_synced: dict[str, int] = field(default_factory=dict)
    last_error: str | None = None
