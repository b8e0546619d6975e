"""
Phonebook core: clean-architecture layout.

- domain: entities (Contact, AddressBook). No outer dependencies.
- application: use cases (PhonebookService, BackgroundSync), ports (ContactSource, ContactCache), DTOs.
- infrastructure: adapters (CardDAVClient, InMemoryContactCache, DemoContactSource).
"""

from phonebook.application import (
    AccessDenied,
    BackgroundSync,
    CacheStatus,
    ContactCache,
    ContactListing,
    ContactSource,
    ContactSourceError,
    PhonebookService,
    SyncStatus,
)
from phonebook.domain import AddressBook, Contact, PhoneNumber, PostalAddress
from phonebook.infrastructure import (
    CardDAVClient,
    CardDAVError,
    DemoContactSource,
    InMemoryContactCache,
)

__all__ = [
    "AccessDenied",
    "AddressBook",
    "BackgroundSync",
    "CacheStatus",
    "CardDAVClient",
    "CardDAVError",
    "Contact",
    "ContactCache",
    "ContactListing",
    "ContactSource",
    "ContactSourceError",
    "DemoContactSource",
    "InMemoryContactCache",
    "PhoneNumber",
    "PhonebookService",
    "PostalAddress",
    "SyncStatus",
]
