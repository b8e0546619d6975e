"""Application layer: use cases, ports, and DTOs. Depends only on domain."""

from phonebook.application.background_sync import BackgroundSync
from phonebook.application.contact_service import (
    PhonebookService,
    clean_address_book_name,
)
from phonebook.application.dto import (
    AccessDenied,
    CacheStatus,
    ContactListing,
    SyncStatus,
)
from phonebook.application.ports import ContactCache, ContactSource, ContactSourceError

__all__ = [
    "AccessDenied",
    "BackgroundSync",
    "CacheStatus",
    "ContactCache",
    "ContactListing",
    "ContactSource",
    "ContactSourceError",
    "PhonebookService",
    "SyncStatus",
    "clean_address_book_name",
]
