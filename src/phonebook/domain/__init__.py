"""Domain layer: entities and value objects. No dependencies on outer layers."""

from phonebook.domain.entities import (
    PHONE_FAX,
    PHONE_MOBILE,
    PHONE_TYPE_ORDER,
    PHONE_VOICE,
    AddressBook,
    Contact,
    PhoneNumber,
    PostalAddress,
)

__all__ = [
    "PHONE_FAX",
    "PHONE_MOBILE",
    "PHONE_TYPE_ORDER",
    "PHONE_VOICE",
    "AddressBook",
    "Contact",
    "PhoneNumber",
    "PostalAddress",
]
