"""Infrastructure layer: concrete implementations of application ports."""

from phonebook.infrastructure.carddav import CardDAVClient, CardDAVError
from phonebook.infrastructure.demo import DEFAULT_DEMO_BOOKS, DemoContactSource
from phonebook.infrastructure.memory_cache import InMemoryContactCache
from phonebook.infrastructure.phone import format_phone
from phonebook.infrastructure.vcard import clean_value, parse_vcard, split_vcards

__all__ = [
    "DEFAULT_DEMO_BOOKS",
    "CardDAVClient",
    "CardDAVError",
    "DemoContactSource",
    "InMemoryContactCache",
    "clean_value",
    "format_phone",
    "parse_vcard",
    "split_vcards",
]
