"""Domain entities: Contact, PhoneNumber, PostalAddress, and AddressBook."""

from dataclasses import dataclass, field

PHONE_MOBILE = "Mobile"
PHONE_VOICE = "Phone"
PHONE_FAX = "Fax"

# Display order for phone types; unknown types sort last.
PHONE_TYPE_ORDER = {PHONE_MOBILE: 1, PHONE_VOICE: 2, PHONE_FAX: 3}


@dataclass(frozen=True)
class PhoneNumber:
    type: str
    number: str


@dataclass(frozen=True)
class PostalAddress:
    """Postal address taken from a vCard ADR property."""

    street: str | None = None
    city: str | None = None
    postal_code: str | None = None
    country: str | None = None

    @property
    def full(self) -> str | None:
        parts = [p for p in (self.street, self.postal_code, self.city, self.country) if p]
        return ", ".join(parts) if parts else None

    def is_empty(self) -> bool:
        return not (self.street or self.city or self.postal_code or self.country)


@dataclass(frozen=True)
class Contact:
    """
    One person or organisation in an address book.
    Only id and name are guaranteed; every other field may be absent.
    """

    id: str
    name: str
    emails: tuple[str, ...] = ()
    phones: tuple[PhoneNumber, ...] = ()
    company: str | None = None
    title: str | None = None
    address: PostalAddress | None = None
    website: str | None = None
    birthday: str | None = None
    notes: str | None = None
    vcard: str = ""
    etag: str | None = None
    url: str | None = None
    address_book: str | None = None

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("Contact name must be non-empty.")

    @property
    def email(self) -> str | None:
        return self.emails[0] if self.emails else None

    @property
    def phone(self) -> str | None:
        return self.phones[0].number if self.phones else None

    def matches(self, term: str) -> bool:
        """Case-insensitive substring match over every searchable field."""
        needle = (term or "").strip().lower()
        if not needle:
            return True
        haystack = [
            self.name,
            self.company,
            self.title,
            self.website,
            self.notes,
            self.address_book,
            *self.emails,
        ]
        for phone in self.phones:
            haystack.extend((phone.number, phone.type))
        if self.address is not None:
            a = self.address
            haystack.extend((a.street, a.city, a.postal_code, a.country, a.full))
        return any(needle in value.lower() for value in haystack if value)


@dataclass(frozen=True)
class AddressBook:
    """A contacts collection on the server. url is None when only the name is known."""

    display_name: str
    url: str | None = None
    description: str | None = None
    contact_count: int | None = field(default=None, compare=False)
