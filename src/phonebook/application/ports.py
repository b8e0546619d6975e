"""Application ports (interfaces). Implemented by infrastructure adapters."""

from typing import Protocol

from phonebook.application.dto import CacheStatus
from phonebook.domain import AddressBook, Contact


class ContactSourceError(Exception):
    """A contact source could not be reached or returned unusable data."""


class ContactSource(Protocol):
    """Lists address books and the contacts inside them."""

    def list_address_books(self) -> list[AddressBook]:
        """Return every address book the source exposes, unfiltered."""
        ...

    def fetch_contacts(self, book: AddressBook) -> list[Contact]:
        """Return the contacts of one book. Raises ContactSourceError when unreachable."""
        ...


class ContactCache(Protocol):
    """Time-boxed storage of contacts keyed by address book name."""

    def get(self, key: str) -> list[Contact] | None:
        """Return the fresh entry for key, or None when missing or expired."""
        ...

    def put(self, key: str, contacts: list[Contact]) -> None:
        ...

    def clear(self, key: str | None = None) -> None:
        """Drop one entry, or everything when key is None."""
        ...

    def status(self) -> dict[str, CacheStatus]:
        ...
