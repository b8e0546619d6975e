"""WebDAV multistatus (207) response parsing."""

import xml.etree.ElementTree as ET
from dataclasses import dataclass

DAV_NS = "DAV:"
CARDDAV_NS = "urn:ietf:params:xml:ns:carddav"

_D = "{%s}" % DAV_NS
_C = "{%s}" % CARDDAV_NS


@dataclass(frozen=True)
class DavResource:
    """One <d:response> element with the properties this client asks for."""

    href: str
    display_name: str | None = None
    description: str | None = None
    etag: str | None = None
    address_data: str | None = None
    is_address_book: bool = False


def parse_multistatus(content: bytes | str) -> list[DavResource]:
    """Return every response with a non-empty href. Raises ET.ParseError on bad XML."""
    root = _parse(content)
    resources = []
    for response in root.iter(f"{_D}response"):
        href = (response.findtext(f"{_D}href") or "").strip()
        if not href:
            continue
        resources.append(
            DavResource(
                href=href,
                display_name=_text(response, f".//{_D}displayname"),
                description=_text(response, f".//{_C}addressbook-description"),
                etag=_text(response, f".//{_D}getetag"),
                address_data=_text(response, f".//{_C}address-data"),
                is_address_book=response.find(f".//{_D}resourcetype/{_C}addressbook")
                is not None,
            )
        )
    return resources


def find_home_set(content: bytes | str) -> str | None:
    """Return the addressbook-home-set href of a principal PROPFIND, or None."""
    root = _parse(content)
    return _text(root, f".//{_C}addressbook-home-set/{_D}href")


def _parse(content: bytes | str) -> ET.Element:
    if isinstance(content, str):
        content = content.encode("utf-8")
    return ET.fromstring(content)


def _text(element: ET.Element, path: str) -> str | None:
    value = element.findtext(path)
    value = value.strip() if value else ""
    return value or None
