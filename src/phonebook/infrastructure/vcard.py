"""vCard parsing into Contact objects.

Records come from several places (REPORT/PROPFIND address-data, single GETs,
whole-book exports) and from several clients, so parsing is lenient: vobject
only splits and unfolds the lines, grouped Apple properties (item1.EMAIL)
count as plain ones, unreadable lines are skipped, and every text value is
cleaned of HTML entities, mojibake and control characters.
"""

import html
import logging
import re

import vobject
from vobject.base import VObjectError

from phonebook.domain import (
    PHONE_FAX,
    PHONE_MOBILE,
    PHONE_TYPE_ORDER,
    PHONE_VOICE,
    Contact,
    PhoneNumber,
    PostalAddress,
)
from phonebook.infrastructure.phone import format_phone

logger = logging.getLogger(__name__)

_VCARD_BLOCK = re.compile(r"BEGIN:VCARD.*?END:VCARD", re.DOTALL | re.IGNORECASE)
_UID_LINE = re.compile(r"^(?:item\d+\.)?UID[^:]*:(.+)$", re.IGNORECASE | re.MULTILINE)
_ESCAPE = re.compile(r"\\([\\,;nN])")
_COMPONENT_SEPARATOR = re.compile(r"(?<!\\);")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_WHITESPACE = re.compile(r"\s+")

# A UTF-8 lead byte shown as cp1252 ("Ã", "Â") followed by its continuation byte.
_MOJIBAKE_PAIR = re.compile("[\u00c2\u00c3][\u0080-\u00bf\u0152-\u2122]")

# Never read, and vobject rejects the whole card when their base64 is broken.
_BINARY_PROPERTY = re.compile(r"^(?:[\w-]+\.)?(?:PHOTO|LOGO|SOUND|KEY)[;:]", re.IGNORECASE)

# ADR: post office box;extended;street;city;region;postal code;country
_ADR_STREET, _ADR_CITY, _ADR_CODE, _ADR_COUNTRY = 2, 3, 5, 6


def clean_value(value: str | None) -> str:
    """Decode entities, repair mojibake, drop control chars, collapse whitespace."""
    if value is None:
        return ""
    text = html.unescape(str(value))
    text = _repair_mojibake(text)
    text = _CONTROL_CHARS.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def split_vcards(text: str) -> list[str]:
    """Split a multi-record export into single BEGIN:VCARD..END:VCARD blocks."""
    return _VCARD_BLOCK.findall(text or "")


def vcard_uid(text: str) -> str | None:
    match = _UID_LINE.search(text or "")
    if not match:
        return None
    return match.group(1).strip() or None


def parse_vcard(
    text: str,
    *,
    contact_id: str,
    url: str | None = None,
    etag: str | None = None,
    phone_region: str | None = "DE",
) -> Contact | None:
    """Return a Contact, or None when the record is unreadable or has no name."""
    raw = (text or "").strip()
    if "BEGIN:VCARD" not in raw.upper():
        return None
    try:
        card = vobject.readOne(
            _drop_binary_properties(raw), transform=False, ignoreUnreadable=True
        )
    except (VObjectError, ValueError) as exc:
        logger.warning("Skipping unreadable vCard %s: %s", contact_id, exc)
        return None

    name = _first_text(card, "fn") or _structured_name(card)
    if not name:
        return None

    return Contact(
        id=contact_id,
        name=name,
        emails=tuple(_all_texts(card, "email")),
        phones=_phones(card, phone_region),
        company=_organisation(card),
        title=_first_text(card, "title"),
        address=_address(card),
        website=_first_text(card, "url"),
        birthday=_first_text(card, "bday"),
        notes=_first_text(card, "note"),
        vcard=raw,
        etag=etag,
        url=url,
    )


def _repair_mojibake(text: str) -> str:
    return _MOJIBAKE_PAIR.sub(_repair_pair, text)


def _repair_pair(match: re.Match) -> str:
    pair = match.group(0)
    try:
        return bytes(_cp1252_byte(ch) for ch in pair).decode("utf-8")
    except UnicodeError:
        return pair


def _cp1252_byte(ch: str) -> int:
    try:
        return ch.encode("cp1252")[0]
    except UnicodeEncodeError:
        # Bytes cp1252 leaves undefined (0x81, 0x8d, ...) usually come through as-is.
        if ord(ch) < 0x100:
            return ord(ch)
        raise


def _drop_binary_properties(text: str) -> str:
    """Remove PHOTO, LOGO, SOUND and KEY lines together with their folded continuations."""
    kept: list[str] = []
    dropping = False
    for line in text.splitlines():
        if line[:1] in (" ", "\t"):
            if not dropping:
                kept.append(line)
            continue
        dropping = bool(_BINARY_PROPERTY.match(line))
        if not dropping:
            kept.append(line)
    return "\r\n".join(kept)


def _unescape(value: str) -> str:
    return _ESCAPE.sub(lambda m: "\n" if m.group(1) in "nN" else m.group(1), value)


def _text(value) -> str:
    if not isinstance(value, str):
        return ""
    return clean_value(_unescape(value))


def _components(value) -> list[str]:
    if not isinstance(value, str):
        return []
    return [_text(part) for part in _COMPONENT_SEPARATOR.split(value)]


def _lines(card, key: str) -> list:
    return card.contents.get(key, [])


def _all_texts(card, key: str) -> list[str]:
    values: list[str] = []
    for line in _lines(card, key):
        value = _text(line.value)
        if value and value not in values:
            values.append(value)
    return values


def _first_text(card, key: str) -> str | None:
    values = _all_texts(card, key)
    return values[0] if values else None


def _structured_name(card) -> str | None:
    for line in _lines(card, "n"):
        parts = _components(line.value) + ["", ""]
        family, given = parts[0], parts[1]
        name = clean_value(f"{given} {family}")
        if name:
            return name
    return None


def _organisation(card) -> str | None:
    for line in _lines(card, "org"):
        joined = ", ".join(p for p in _components(line.value) if p)
        if joined:
            return joined
    return None


def _phone_type(line) -> str:
    tags: list[str] = list(getattr(line, "singletonparams", None) or [])
    for key, values in line.params.items():
        tags.append(key)
        tags.extend(values)
    joined = " ".join(str(t) for t in tags).lower()
    if "cell" in joined or "mobile" in joined:
        return PHONE_MOBILE
    if "fax" in joined:
        return PHONE_FAX
    return PHONE_VOICE


def _phones(card, region: str | None) -> tuple[PhoneNumber, ...]:
    phones: list[PhoneNumber] = []
    for line in _lines(card, "tel"):
        number = _text(line.value)
        if number.lower().startswith("tel:"):
            number = number[4:]
        if not number:
            continue
        phone = PhoneNumber(type=_phone_type(line), number=format_phone(number, region))
        if phone not in phones:
            phones.append(phone)
    unknown = len(PHONE_TYPE_ORDER) + 1
    phones.sort(key=lambda p: PHONE_TYPE_ORDER.get(p.type, unknown))
    return tuple(phones)


def _address(card) -> PostalAddress | None:
    for line in _lines(card, "adr"):
        parts = _components(line.value) + [""] * 7
        address = PostalAddress(
            street=parts[_ADR_STREET] or None,
            city=parts[_ADR_CITY] or None,
            postal_code=parts[_ADR_CODE] or None,
            country=parts[_ADR_COUNTRY] or None,
        )
        if not address.is_empty():
            return address
    return None
