"""Phone number formatting for display and search."""

import re

import phonenumbers

_PUNCTUATION = re.compile(r"[\s\-()]")


def format_phone(raw: str, default_region: str | None = "DE") -> str:
    """Return the number as dialled from default_region.

    Numbers in the home region become national digits with the trunk prefix
    ("+49 171 2345678" -> "01712345678" for "DE"). Other numbers with a
    country code become E.164. Numbers written without a country code, and
    anything phonenumbers cannot parse, are returned with spaces, dashes and
    parentheses removed.
    """
    if not raw or not str(raw).strip():
        return ""
    cleaned = _PUNCTUATION.sub("", str(raw).strip())
    try:
        parsed = phonenumbers.parse(cleaned, default_region, keep_raw_input=True)
    except phonenumbers.NumberParseException:
        return cleaned

    # Dialled without a country code: already national, leave it as written.
    if parsed.country_code_source == phonenumbers.CountryCodeSource.FROM_DEFAULT_COUNTRY:
        return cleaned

    home_code = phonenumbers.country_code_for_region(default_region) if default_region else 0
    if home_code and parsed.country_code == home_code:
        metadata = phonenumbers.PhoneMetadata.metadata_for_region(default_region)
        prefix = (metadata.national_prefix if metadata else None) or ""
        return prefix + phonenumbers.national_significant_number(parsed)
    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)
