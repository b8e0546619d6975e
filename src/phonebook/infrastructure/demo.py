"""Built-in demo address books, served when no server is configured or reachable."""

from collections.abc import Iterable

from phonebook.domain import AddressBook, Contact
from phonebook.infrastructure.vcard import parse_vcard, vcard_uid

DEFAULT_DEMO_BOOKS = ("Suppliers", "Sales Reps", "Tradespeople")


def _card(uid: str, name: str, email: str, phone: str, org: str) -> str:
    return "\n".join(
        [
            "BEGIN:VCARD",
            "VERSION:3.0",
            f"UID:{uid}",
            f"FN:{name}",
            f"EMAIL;TYPE=INTERNET:{email}",
            f"TEL;TYPE=WORK:{phone}",
            f"ORG:{org}",
            "END:VCARD",
        ]
    )


_DEMO_VCARDS = {
    "Suppliers": [
        _card("demo-1", "Max Mustermann", "max.mustermann@freshfoods.example", "+49 123 456789", "Fresh Foods Central"),
        _card("demo-4", "Petra Meier", "petra.meier@freshfoods-south.example", "+49 444 111222", "Fresh Foods South"),
    ],
    "Sales Reps": [
        _card("demo-2", "Anna Schmidt", "anna.schmidt@sales-north.example", "+49 987 654321", "Sales North"),
        _card("demo-5", "Thomas Wagner", "thomas.wagner@sales-west.example", "+49 333 999888", "Sales West Ltd"),
    ],
    "Tradespeople": [
        _card("demo-3", "Klaus Bauer", "klaus.bauer@bauer-plumbing.example", "+49 555 123456", "Bauer Plumbing"),
        _card("demo-6", "Sandra Hoffmann", "sandra.hoffmann@hoffmann-electric.example", "+49 222 777555", "Hoffmann Electrical"),
    ],
}


class DemoContactSource:
    """Serves a fixed set of contacts. Book names without a demo group get every contact."""

    def __init__(self, book_names: Iterable[str] = (), *, phone_region: str | None = "DE") -> None:
        self._names = [n.strip() for n in book_names if n and n.strip()] or list(DEFAULT_DEMO_BOOKS)
        self._phone_region = phone_region

    def list_address_books(self) -> list[AddressBook]:
        return [
            AddressBook(display_name=name, description=f"Address book: {name} (demo)")
            for name in self._names
        ]

    def fetch_contacts(self, book: AddressBook) -> list[Contact]:
        wanted = book.display_name.lower()
        groups = [key for key in _DEMO_VCARDS if key.lower() in wanted] or list(_DEMO_VCARDS)
        contacts = []
        for group in groups:
            for vcard in _DEMO_VCARDS[group]:
                contact = parse_vcard(
                    vcard,
                    contact_id=vcard_uid(vcard) or group,
                    phone_region=self._phone_region,
                )
                if contact is not None:
                    contacts.append(contact)
        return contacts
