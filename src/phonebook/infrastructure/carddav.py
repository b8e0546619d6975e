"""CardDAV client: address book discovery and contact retrieval over httpx."""

import logging
import xml.etree.ElementTree as ET
from concurrent.futures import ThreadPoolExecutor
from urllib.parse import quote, unquote, urljoin, urlsplit

import httpx

from phonebook.application.ports import ContactSourceError
from phonebook.domain import AddressBook, Contact
from phonebook.infrastructure.multistatus import (
    DavResource,
    find_home_set,
    parse_multistatus,
)
from phonebook.infrastructure.vcard import parse_vcard, split_vcards, vcard_uid

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_BATCH_SIZE = 50

_PRINCIPAL_PROPFIND = """<?xml version="1.0" encoding="utf-8" ?>
<d:propfind xmlns:d="DAV:" xmlns:card="urn:ietf:params:xml:ns:carddav">
  <d:prop>
    <card:addressbook-home-set />
    <d:displayname />
  </d:prop>
</d:propfind>"""

_ADDRESS_BOOKS_PROPFIND = """<?xml version="1.0" encoding="utf-8" ?>
<d:propfind xmlns:d="DAV:" xmlns:card="urn:ietf:params:xml:ns:carddav">
  <d:prop>
    <d:displayname />
    <d:resourcetype />
    <card:addressbook-description />
  </d:prop>
</d:propfind>"""

_ADDRESS_DATA_REPORT = """<?xml version="1.0" encoding="utf-8" ?>
<card:addressbook-query xmlns:d="DAV:" xmlns:card="urn:ietf:params:xml:ns:carddav">
  <d:prop>
    <d:getetag />
    <card:address-data />
  </d:prop>
</card:addressbook-query>"""

_ADDRESS_DATA_PROPFIND = """<?xml version="1.0" encoding="utf-8" ?>
<d:propfind xmlns:d="DAV:" xmlns:card="urn:ietf:params:xml:ns:carddav">
  <d:prop>
    <d:getetag />
    <card:address-data />
  </d:prop>
</d:propfind>"""

_ETAG_PROPFIND = """<?xml version="1.0" encoding="utf-8" ?>
<d:propfind xmlns:d="DAV:">
  <d:prop>
    <d:getetag />
  </d:prop>
</d:propfind>"""

_VCARD_HEADERS = {
    "Accept": "text/vcard, application/vcard, */*",
    "Cache-Control": "no-cache",
}


class CardDAVError(ContactSourceError):
    """A CardDAV request failed or the server answered with something unusable."""


class CardDAVClient:
    """
    Talks to one CardDAV principal with HTTP Basic auth.
    Contacts are retrieved with the first of several methods that yields any:
    whole-book export, REPORT, PROPFIND with address-data, then one GET per card.
    """

    def __init__(
        self,
        server_url: str,
        username: str,
        password: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        batch_size: int = DEFAULT_BATCH_SIZE,
        phone_region: str | None = "DE",
        http_client: httpx.Client | None = None,
    ) -> None:
        if not server_url or not server_url.strip():
            raise ValueError("server_url is required.")
        self._server_url = server_url.strip()
        parts = urlsplit(self._server_url)
        self._base_url = f"{parts.scheme}://{parts.netloc}"
        self._batch_size = max(1, batch_size)
        self._phone_region = phone_region
        self._http = http_client or httpx.Client(
            auth=httpx.BasicAuth(username, password),
            timeout=timeout,
            follow_redirects=True,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def close(self) -> None:
        self._http.close()

    def absolute_url(self, href: str) -> str:
        return urljoin(self._base_url + "/", href)

    # --- discovery ---

    def discover_home_url(self) -> str:
        """Return the addressbook-home-set URL of the principal."""
        response = self._request(
            "PROPFIND", self._server_url, content=_PRINCIPAL_PROPFIND, depth="0"
        )
        try:
            href = find_home_set(response.content)
        except ET.ParseError as exc:
            raise CardDAVError(f"Unreadable principal response: {exc}") from exc
        if href is None:
            fallback = self._fallback_home_url()
            logger.info("No addressbook-home-set found, trying %s", fallback)
            return fallback
        home_url = self.absolute_url(href)
        logger.info("addressbook-home-set: %s", home_url)
        return home_url

    def list_address_books(self) -> list[AddressBook]:
        home_url = self.discover_home_url()
        resources = self._propfind(home_url, _ADDRESS_BOOKS_PROPFIND)
        books = [
            AddressBook(
                display_name=r.display_name or _last_segment(r.href),
                url=self.absolute_url(r.href),
                description=r.description,
            )
            for r in resources
            if r.is_address_book
        ]
        logger.info("Found address books: %s", [b.display_name for b in books])
        return books

    def address_book_url(self, book: AddressBook) -> str:
        if book.url:
            url = self.absolute_url(book.url)
        else:
            url = self._fallback_home_url() + quote(book.display_name)
        return url if url.endswith("/") else url + "/"

    # --- retrieval ---

    def fetch_contacts(self, book: AddressBook) -> list[Contact]:
        """Return the contacts of book. Raises CardDAVError only when every method failed."""
        url = self.address_book_url(book)
        logger.info("Loading contacts of %s from %s", book.display_name, url)
        methods = (
            ("export", self._fetch_export),
            ("REPORT", self._fetch_report),
            ("PROPFIND", self._fetch_propfind),
            ("single GET", self._fetch_individually),
        )
        failures = []
        for label, method in methods:
            try:
                contacts = method(url)
            except CardDAVError as exc:
                logger.info("Method %s failed for %s: %s", label, book.display_name, exc)
                failures.append(f"{label}: {exc}")
                continue
            if contacts:
                logger.info(
                    "Method %s loaded %d contacts for %s",
                    label,
                    len(contacts),
                    book.display_name,
                )
                return contacts
            logger.info("Method %s found no contacts for %s", label, book.display_name)
        if len(failures) == len(methods):
            raise CardDAVError("; ".join(failures))
        return []

    def _fetch_export(self, url: str) -> list[Contact]:
        response = self._request("GET", url + "?export", headers=_VCARD_HEADERS)
        text = response.text
        if "BEGIN:VCARD" not in text:
            logger.info("Export of %s returned no vCard data", url)
            return []
        contacts = []
        for index, block in enumerate(split_vcards(text)):
            uid = vcard_uid(block)
            if uid:
                contact_url = f"{url}{quote(uid, safe='')}.vcf"
            else:
                contact_url = f"{url}export-{index}.vcf"
            contact = parse_vcard(
                block,
                contact_id=contact_url,
                url=contact_url,
                phone_region=self._phone_region,
            )
            if contact is not None:
                contacts.append(contact)
        return contacts

    def _fetch_report(self, url: str) -> list[Contact]:
        response = self._request("REPORT", url, content=_ADDRESS_DATA_REPORT, depth="1")
        return self._contacts_from(self._parse(response))

    def _fetch_propfind(self, url: str) -> list[Contact]:
        return self._contacts_from(self._propfind(url, _ADDRESS_DATA_PROPFIND))

    def _fetch_individually(self, url: str) -> list[Contact]:
        resources = [r for r in self._propfind(url, _ETAG_PROPFIND) if r.href.endswith(".vcf")]
        logger.info("Found %d vCard files in %s", len(resources), url)
        if not resources:
            return []

        contacts: list[Contact] = []
        batches = range(0, len(resources), self._batch_size)
        with ThreadPoolExecutor(max_workers=min(self._batch_size, len(resources))) as pool:
            for number, start in enumerate(batches, start=1):
                batch = resources[start : start + self._batch_size]
                loaded = [c for c in pool.map(self._fetch_one, batch) if c is not None]
                contacts.extend(loaded)
                logger.info(
                    "Batch %d/%d: %d of %d contacts loaded",
                    number,
                    len(batches),
                    len(loaded),
                    len(batch),
                )
        return contacts

    def _fetch_one(self, resource: DavResource) -> Contact | None:
        url = self.absolute_url(resource.href)
        try:
            response = self._request("GET", url, headers=_VCARD_HEADERS)
        except CardDAVError as exc:
            logger.warning("Skipping %s: %s", url, exc)
            return None
        return parse_vcard(
            response.text,
            contact_id=url,
            url=url,
            etag=resource.etag,
            phone_region=self._phone_region,
        )

    def _contacts_from(self, resources: list[DavResource]) -> list[Contact]:
        contacts = []
        for resource in resources:
            if not resource.address_data:
                continue
            url = self.absolute_url(resource.href)
            contact = parse_vcard(
                resource.address_data,
                contact_id=url,
                url=url,
                etag=resource.etag,
                phone_region=self._phone_region,
            )
            if contact is not None:
                contacts.append(contact)
        return contacts

    # --- transport ---

    def _fallback_home_url(self) -> str:
        url = self._server_url.replace("/principals/users/", "/addressbooks/users/")
        return url if url.endswith("/") else url + "/"

    def _propfind(self, url: str, body: str) -> list[DavResource]:
        return self._parse(self._request("PROPFIND", url, content=body, depth="1"))

    def _parse(self, response: httpx.Response) -> list[DavResource]:
        try:
            return parse_multistatus(response.content)
        except ET.ParseError as exc:
            raise CardDAVError(f"Unreadable multistatus from {response.url}: {exc}") from exc

    def _request(
        self,
        method: str,
        url: str,
        *,
        content: str | None = None,
        depth: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        request_headers: dict[str, str] = {}
        if content is not None:
            request_headers["Content-Type"] = "application/xml; charset=utf-8"
        if depth is not None:
            request_headers["Depth"] = depth
        request_headers.update(headers or {})
        try:
            response = self._http.request(
                method, url, content=content, headers=request_headers
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise CardDAVError(f"{method} {url} failed: {exc}") from exc
        return response


def _last_segment(href: str) -> str:
    return unquote(href.rstrip("/").rsplit("/", 1)[-1])
