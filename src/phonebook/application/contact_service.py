"""Address books, contact listing, search, and cache management."""

import logging
import re
from collections.abc import Iterable
from dataclasses import replace

from phonebook.application.dto import AccessDenied, CacheStatus, ContactListing
from phonebook.application.ports import ContactCache, ContactSource, ContactSourceError
from phonebook.domain import AddressBook, Contact

logger = logging.getLogger(__name__)

# Collections that share the address book home but hold no real contacts.
_EXCLUDED_NAME_PARTS = ("proxy", "calendar")

# "Vendors (Jane Doe)" -> "Vendors"
_OWNER_SUFFIX = re.compile(r"\s*\([^)]*\)\s*$")


def clean_address_book_name(name: str) -> str:
    """Strip the trailing parenthesised owner suffix servers append to shared books."""
    return _OWNER_SUFFIX.sub("", name or "").strip()


class PhonebookService:
    """Core flow: discover books -> load contacts (cached) -> list and search."""

    def __init__(
        self,
        source: ContactSource,
        cache: ContactCache,
        *,
        allowed_books: Iterable[str] = (),
        fallback: ContactSource | None = None,
        demo: bool = False,
    ) -> None:
        self._source = source
        self._cache = cache
        self._allowed = [b.strip() for b in allowed_books if b and b.strip()]
        self._fallback = fallback
        self._demo = demo
        self._books: dict[str, AddressBook] = {}

    @property
    def source_label(self) -> str:
        return "demo" if self._demo else "CardDAV"

    @property
    def allowed_books(self) -> list[str]:
        return list(self._allowed)

    def address_books(self) -> list[AddressBook]:
        """Return visible books in display order, with contact counts where cached."""
        try:
            raw = self._source.list_address_books()
        except ContactSourceError as exc:
            if self._fallback is None:
                raise
            logger.warning("Address book discovery failed, using fallback books: %s", exc)
            raw = self._fallback.list_address_books()

        books = self._select_books(raw)
        self._books = {book.display_name: book for book in books}
        logger.info("Address books: %s", [b.display_name for b in books])

        status = self._cache.status()
        return [
            replace(book, contact_count=status[book.display_name].contact_count)
            if book.display_name in status
            else book
            for book in books
        ]

    def list_contacts(self, address_book: str) -> ContactListing | AccessDenied:
        """Return every contact of one book."""
        if not self._is_allowed(address_book):
            return AccessDenied(address_book=address_book)
        contacts = self._load(address_book)
        return ContactListing(
            contacts=list(contacts),
            total=len(contacts),
            address_books=[address_book],
        )

    def search_contacts(
        self, address_book: str, term: str
    ) -> ContactListing | AccessDenied:
        """Return contacts of one book matching term. Empty term returns all."""
        if not self._is_allowed(address_book):
            return AccessDenied(address_book=address_book)
        contacts = self._cache.get(address_book)
        if contacts is None:
            contacts = self._load(address_book)
        matched = [c for c in contacts if c.matches(term)]
        return ContactListing(
            contacts=matched,
            total=len(contacts),
            address_books=[address_book],
        )

    def search_all(self, term: str = "") -> ContactListing:
        """Search every visible book. A book that fails to load is skipped."""
        books = self.address_books()
        everything: list[Contact] = []
        for book in books:
            try:
                contacts = self._load(book.display_name)
            except ContactSourceError as exc:
                logger.error("Failed to load %s: %s", book.display_name, exc)
                continue
            logger.info("Contacts from %s: %d", book.display_name, len(contacts))
            everything.extend(contacts)
        matched = [c for c in everything if c.matches(term)]
        logger.info("Search %r: %d of %d contacts", term, len(matched), len(everything))
        return ContactListing(
            contacts=matched,
            total=len(everything),
            address_books=[b.display_name for b in books],
        )

    def refresh(self) -> dict[str, int]:
        """Drop the cache and reload every book. Returns contact count per book."""
        self._cache.clear()
        counts: dict[str, int] = {}
        for book in self.address_books():
            try:
                counts[book.display_name] = len(self._load(book.display_name))
            except ContactSourceError as exc:
                logger.error("Refresh of %s failed: %s", book.display_name, exc)
        return counts

    def clear_cache(self, address_book: str | None = None) -> None:
        self._cache.clear(address_book)
        if address_book:
            logger.info("Cache cleared for %s", address_book)
        else:
            logger.info("Cache cleared")

    def cache_status(self) -> dict[str, CacheStatus]:
        return self._cache.status()

    def _is_allowed(self, name: str) -> bool:
        if not self._allowed or name in self._allowed or name in self._books:
            return True
        # Cleaned names are only known once books have been discovered.
        try:
            self.address_books()
        except ContactSourceError as exc:
            logger.warning("Discovery failed while checking access to %s: %s", name, exc)
            return False
        return name in self._books

    def _select_books(self, raw: list[AddressBook]) -> list[AddressBook]:
        ranked: list[tuple[int, AddressBook]] = []
        for book in raw:
            lowered = book.display_name.lower()
            if any(part in lowered for part in _EXCLUDED_NAME_PARTS):
                continue
            if self._allowed:
                rank = next(
                    (i for i, name in enumerate(self._allowed) if name in book.display_name),
                    None,
                )
                if rank is None:
                    continue
            else:
                rank = len(ranked)
            name = clean_address_book_name(book.display_name)
            if not name:
                continue
            ranked.append((rank, replace(book, display_name=name)))
        ranked.sort(key=lambda item: item[0])
        return [book for _, book in ranked]

    def _resolve(self, name: str) -> AddressBook:
        book = self._books.get(name)
        if book is None:
            try:
                self.address_books()
            except ContactSourceError as exc:
                logger.warning("Discovery failed while resolving %s: %s", name, exc)
            book = self._books.get(name)
        return book or AddressBook(display_name=name)

    def _load(self, name: str) -> list[Contact]:
        cached = self._cache.get(name)
        if cached:
            logger.info("Cache hit for %s (%d contacts)", name, len(cached))
            return cached
        if cached is not None:
            # Empty entries are never served; reload instead.
            self._cache.clear(name)

        book = self._resolve(name)
        try:
            contacts = self._source.fetch_contacts(book)
        except ContactSourceError as exc:
            if self._fallback is None:
                raise
            logger.warning("Loading %s failed, using fallback contacts: %s", name, exc)
            return _tag(self._fallback.fetch_contacts(book), name)

        if contacts:
            contacts = _tag(contacts, name)
            self._cache.put(name, contacts)
            return contacts
        if self._fallback is not None:
            logger.info("No contacts found for %s, using fallback contacts", name)
            return _tag(self._fallback.fetch_contacts(book), name)
        return []


def _tag(contacts: list[Contact], address_book: str) -> list[Contact]:
    return [replace(c, address_book=address_book) for c in contacts]
