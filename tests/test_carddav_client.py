"""Tests for CardDAVClient: discovery and the retrieval fallback chain (pytest-httpx)."""

import pytest
from pytest_httpx import HTTPXMock

from phonebook.domain import AddressBook, PhoneNumber
from phonebook.infrastructure.carddav import CardDAVClient, CardDAVError

SERVER_URL = "https://dav.example.com/remote.php/dav/principals/users/jane/"
HOME_URL = "https://dav.example.com/remote.php/dav/addressbooks/users/jane/"
BOOK_URL = HOME_URL + "vendors/"
VENDORS = AddressBook(display_name="Vendors", url="/remote.php/dav/addressbooks/users/jane/vendors/")

# --- XML / vCard fixtures ---

PRINCIPAL_RESPONSE = b"""<?xml version="1.0" encoding="utf-8"?>
<d:multistatus xmlns:d="DAV:" xmlns:card="urn:ietf:params:xml:ns:carddav">
  <d:response>
    <d:href>/remote.php/dav/principals/users/jane/</d:href>
    <d:propstat>
      <d:prop>
        <card:addressbook-home-set>
          <d:href>/remote.php/dav/addressbooks/users/jane/</d:href>
        </card:addressbook-home-set>
        <d:displayname>Jane Doe</d:displayname>
      </d:prop>
      <d:status>HTTP/1.1 200 OK</d:status>
    </d:propstat>
  </d:response>
</d:multistatus>"""

PRINCIPAL_WITHOUT_HOME = b"""<?xml version="1.0" encoding="utf-8"?>
<d:multistatus xmlns:d="DAV:">
  <d:response>
    <d:href>/remote.php/dav/principals/users/jane/</d:href>
    <d:propstat>
      <d:prop><d:displayname>Jane Doe</d:displayname></d:prop>
      <d:status>HTTP/1.1 200 OK</d:status>
    </d:propstat>
  </d:response>
</d:multistatus>"""

ADDRESS_BOOKS_RESPONSE = b"""<?xml version="1.0" encoding="utf-8"?>
<d:multistatus xmlns:d="DAV:" xmlns:card="urn:ietf:params:xml:ns:carddav">
  <d:response>
    <d:href>/remote.php/dav/addressbooks/users/jane/</d:href>
    <d:propstat>
      <d:prop><d:resourcetype><d:collection/></d:resourcetype></d:prop>
      <d:status>HTTP/1.1 200 OK</d:status>
    </d:propstat>
  </d:response>
  <d:response>
    <d:href>/remote.php/dav/addressbooks/users/jane/vendors/</d:href>
    <d:propstat>
      <d:prop>
        <d:displayname>Vendors (Jane Doe)</d:displayname>
        <d:resourcetype><d:collection/><card:addressbook/></d:resourcetype>
        <card:addressbook-description>Suppliers</card:addressbook-description>
      </d:prop>
      <d:status>HTTP/1.1 200 OK</d:status>
    </d:propstat>
  </d:response>
  <d:response>
    <d:href>/remote.php/dav/addressbooks/users/jane/z-app-generated--contactsinteraction--recent/</d:href>
    <d:propstat>
      <d:prop>
        <d:resourcetype><d:collection/><card:addressbook/></d:resourcetype>
      </d:prop>
      <d:status>HTTP/1.1 200 OK</d:status>
    </d:propstat>
  </d:response>
  <d:response>
    <d:href>/remote.php/dav/addressbooks/users/jane/calendar-proxy-read/</d:href>
    <d:propstat>
      <d:prop>
        <d:displayname>calendar-proxy-read</d:displayname>
        <d:resourcetype><d:collection/></d:resourcetype>
      </d:prop>
      <d:status>HTTP/1.1 200 OK</d:status>
    </d:propstat>
  </d:response>
</d:multistatus>"""


def _vcard(name: str, phone: str = "+49 30 1234567", uid: str | None = None) -> str:
    lines = ["BEGIN:VCARD", "VERSION:3.0"]
    if uid:
        lines.append(f"UID:{uid}")
    lines += [f"FN:{name}", f"TEL;TYPE=CELL:{phone}", "END:VCARD"]
    return "\r\n".join(lines)


def _address_data_response(items: list[tuple[str, str, str]]) -> bytes:
    """Build a 207 response carrying address-data for (href, etag, vcard) triples."""
    parts = [
        '<?xml version="1.0" encoding="utf-8"?>',
        '<d:multistatus xmlns:d="DAV:" xmlns:card="urn:ietf:params:xml:ns:carddav">',
    ]
    for href, etag, vcard in items:
        parts.append(
            f"<d:response><d:href>{href}</d:href><d:propstat><d:prop>"
            f"<d:getetag>{etag}</d:getetag>"
            f"<card:address-data>{vcard}</card:address-data>"
            f"</d:prop><d:status>HTTP/1.1 200 OK</d:status></d:propstat></d:response>"
        )
    parts.append("</d:multistatus>")
    return "\n".join(parts).encode("utf-8")


def _etag_response(hrefs: list[str]) -> bytes:
    parts = ['<d:multistatus xmlns:d="DAV:">']
    for href in hrefs:
        parts.append(
            f"<d:response><d:href>{href}</d:href><d:propstat><d:prop>"
            f'<d:getetag>"{href[-5:]}"</d:getetag>'
            f"</d:prop></d:propstat></d:response>"
        )
    parts.append("</d:multistatus>")
    return "".join(parts).encode("utf-8")


EMPTY_MULTISTATUS = b'<d:multistatus xmlns:d="DAV:"></d:multistatus>'


# --- fixtures ---


@pytest.fixture
def client():
    c = CardDAVClient(SERVER_URL, "jane", "secret", phone_region="DE")
    try:
        yield c
    finally:
        c.close()


def _mock_failed_export(httpx_mock: HTTPXMock, status_code: int = 404) -> None:
    httpx_mock.add_response(method="GET", url=BOOK_URL + "?export", status_code=status_code)


# --- discovery ---


class TestDiscovery:
    def test_list_address_books_follows_home_set(
        self, client: CardDAVClient, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(
            method="PROPFIND",
            url=SERVER_URL,
            match_headers={"Depth": "0"},
            status_code=207,
            content=PRINCIPAL_RESPONSE,
        )
        httpx_mock.add_response(
            method="PROPFIND",
            url=HOME_URL,
            match_headers={"Depth": "1"},
            status_code=207,
            content=ADDRESS_BOOKS_RESPONSE,
        )

        books = client.list_address_books()

        assert [b.display_name for b in books] == [
            "Vendors (Jane Doe)",
            "z-app-generated--contactsinteraction--recent",
        ]
        assert books[0].url == BOOK_URL
        assert books[0].description == "Suppliers"

    def test_missing_home_set_falls_back_to_addressbooks_path(
        self, client: CardDAVClient, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(
            method="PROPFIND", url=SERVER_URL, status_code=207, content=PRINCIPAL_WITHOUT_HOME
        )
        httpx_mock.add_response(
            method="PROPFIND", url=HOME_URL, status_code=207, content=ADDRESS_BOOKS_RESPONSE
        )

        books = client.list_address_books()

        assert books[0].url == BOOK_URL

    def test_auth_failure_raises_carddav_error(
        self, client: CardDAVClient, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(method="PROPFIND", url=SERVER_URL, status_code=401)

        with pytest.raises(CardDAVError, match="401"):
            client.list_address_books()

    def test_unreadable_principal_raises_carddav_error(
        self, client: CardDAVClient, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(
            method="PROPFIND", url=SERVER_URL, status_code=207, content=b"<html>oops"
        )

        with pytest.raises(CardDAVError, match="Unreadable"):
            client.discover_home_url()


class TestAddressBookUrl:
    def test_relative_href_is_resolved_against_server(self, client: CardDAVClient) -> None:
        assert client.address_book_url(VENDORS) == BOOK_URL

    def test_name_only_book_uses_home_fallback(self, client: CardDAVClient) -> None:
        book = AddressBook(display_name="Trades People")
        assert client.address_book_url(book) == HOME_URL + "Trades%20People/"

    def test_base_url(self, client: CardDAVClient) -> None:
        assert client.base_url == "https://dav.example.com"

    def test_server_url_required(self) -> None:
        with pytest.raises(ValueError):
            CardDAVClient("", "jane", "secret")


# --- retrieval fallback chain ---


class TestFetchContacts:
    def test_export_is_used_first(self, client: CardDAVClient, httpx_mock: HTTPXMock) -> None:
        export = "\r\n".join(
            [_vcard("Anna Schmidt", uid="uid-anna"), _vcard("Klaus Bauer"), "BEGIN:VCARD\r\nEND:VCARD"]
        )
        httpx_mock.add_response(method="GET", url=BOOK_URL + "?export", text=export)

        contacts = client.fetch_contacts(VENDORS)

        assert [c.name for c in contacts] == ["Anna Schmidt", "Klaus Bauer"]
        assert contacts[0].id == BOOK_URL + "uid-anna.vcf"
        assert contacts[1].id == BOOK_URL + "export-1.vcf"
        assert contacts[0].phones == (PhoneNumber(type="Mobile", number="0301234567"),)

    def test_report_used_when_export_fails(
        self, client: CardDAVClient, httpx_mock: HTTPXMock
    ) -> None:
        _mock_failed_export(httpx_mock)
        href = "/remote.php/dav/addressbooks/users/jane/vendors/anna.vcf"
        httpx_mock.add_response(
            method="REPORT",
            url=BOOK_URL,
            status_code=207,
            content=_address_data_response([(href, '"e1"', _vcard("Anna Schmidt"))]),
        )

        contacts = client.fetch_contacts(VENDORS)

        assert len(contacts) == 1
        assert contacts[0].id == BOOK_URL + "anna.vcf"
        assert contacts[0].url == BOOK_URL + "anna.vcf"
        assert contacts[0].etag == '"e1"'

    def test_export_without_vcards_moves_on(
        self, client: CardDAVClient, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(method="GET", url=BOOK_URL + "?export", text="<html>login</html>")
        href = "/remote.php/dav/addressbooks/users/jane/vendors/anna.vcf"
        httpx_mock.add_response(
            method="REPORT",
            url=BOOK_URL,
            status_code=207,
            content=_address_data_response([(href, '"e1"', _vcard("Anna Schmidt"))]),
        )

        assert [c.name for c in client.fetch_contacts(VENDORS)] == ["Anna Schmidt"]

    def test_propfind_used_when_report_unsupported(
        self, client: CardDAVClient, httpx_mock: HTTPXMock
    ) -> None:
        _mock_failed_export(httpx_mock)
        httpx_mock.add_response(method="REPORT", url=BOOK_URL, status_code=501)
        href = "/remote.php/dav/addressbooks/users/jane/vendors/klaus.vcf"
        httpx_mock.add_response(
            method="PROPFIND",
            url=BOOK_URL,
            status_code=207,
            content=_address_data_response([(href, '"e2"', _vcard("Klaus Bauer"))]),
        )

        contacts = client.fetch_contacts(VENDORS)

        assert [c.name for c in contacts] == ["Klaus Bauer"]
        assert contacts[0].etag == '"e2"'

    def test_single_gets_when_no_address_data(
        self, client: CardDAVClient, httpx_mock: HTTPXMock
    ) -> None:
        _mock_failed_export(httpx_mock)
        httpx_mock.add_response(
            method="REPORT", url=BOOK_URL, status_code=207, content=EMPTY_MULTISTATUS
        )
        # First PROPFIND asks for address-data, second only for etags.
        httpx_mock.add_response(
            method="PROPFIND", url=BOOK_URL, status_code=207, content=EMPTY_MULTISTATUS
        )
        base = "/remote.php/dav/addressbooks/users/jane/vendors/"
        httpx_mock.add_response(
            method="PROPFIND",
            url=BOOK_URL,
            status_code=207,
            content=_etag_response([base, base + "a.vcf", base + "b.vcf", base + "c.vcf"]),
        )
        httpx_mock.add_response(method="GET", url=BOOK_URL + "a.vcf", text=_vcard("Anna Schmidt"))
        httpx_mock.add_response(method="GET", url=BOOK_URL + "b.vcf", status_code=500)
        httpx_mock.add_response(method="GET", url=BOOK_URL + "c.vcf", text=_vcard("Klaus Bauer"))

        contacts = client.fetch_contacts(VENDORS)

        assert [c.name for c in contacts] == ["Anna Schmidt", "Klaus Bauer"]
        assert contacts[0].id == BOOK_URL + "a.vcf"
        assert contacts[0].etag == '"a.vcf"'

    def test_single_gets_span_several_batches_in_order(self, httpx_mock: HTTPXMock) -> None:
        _mock_failed_export(httpx_mock)
        httpx_mock.add_response(
            method="REPORT", url=BOOK_URL, status_code=207, content=EMPTY_MULTISTATUS
        )
        httpx_mock.add_response(
            method="PROPFIND", url=BOOK_URL, status_code=207, content=EMPTY_MULTISTATUS
        )
        base = "/remote.php/dav/addressbooks/users/jane/vendors/"
        names = ["Anna Schmidt", "Klaus Bauer", "Petra Meier", "Max Mustermann", "Sandra Hoffmann"]
        files = [f"{n}.vcf" for n in "abcde"]
        httpx_mock.add_response(
            method="PROPFIND",
            url=BOOK_URL,
            status_code=207,
            content=_etag_response([base + f for f in files]),
        )
        for file, name in zip(files, names):
            httpx_mock.add_response(method="GET", url=BOOK_URL + file, text=_vcard(name))

        client = CardDAVClient(SERVER_URL, "jane", "secret", batch_size=2)
        try:
            contacts = client.fetch_contacts(VENDORS)
        finally:
            client.close()

        assert [c.name for c in contacts] == names
        assert [c.id for c in contacts] == [BOOK_URL + f for f in files]

    def test_export_uid_is_escaped_in_contact_id(
        self, client: CardDAVClient, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(
            method="GET",
            url=BOOK_URL + "?export",
            text=_vcard("Anna Schmidt", uid="team/anna #1"),
        )

        (contact,) = client.fetch_contacts(VENDORS)

        assert contact.id == BOOK_URL + "team%2Fanna%20%231.vcf"

    def test_every_method_failing_raises(
        self, client: CardDAVClient, httpx_mock: HTTPXMock
    ) -> None:
        _mock_failed_export(httpx_mock, status_code=500)
        httpx_mock.add_response(method="REPORT", url=BOOK_URL, status_code=500)
        httpx_mock.add_response(method="PROPFIND", url=BOOK_URL, status_code=500)
        httpx_mock.add_response(method="PROPFIND", url=BOOK_URL, status_code=500)

        with pytest.raises(CardDAVError, match="export"):
            client.fetch_contacts(VENDORS)

    def test_empty_book_returns_empty_list(
        self, client: CardDAVClient, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(method="GET", url=BOOK_URL + "?export", text="")
        httpx_mock.add_response(
            method="REPORT", url=BOOK_URL, status_code=207, content=EMPTY_MULTISTATUS
        )
        httpx_mock.add_response(
            method="PROPFIND", url=BOOK_URL, status_code=207, content=EMPTY_MULTISTATUS
        )
        httpx_mock.add_response(
            method="PROPFIND", url=BOOK_URL, status_code=207, content=EMPTY_MULTISTATUS
        )

        assert client.fetch_contacts(VENDORS) == []
