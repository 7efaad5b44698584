"""Phone number normalization to E.164.

Local Ugandan formats (``0772123456``, ``256772123456``) are expanded with the
default country code; anything that does not end up as a valid E.164 number
is rejected.
"""

import re

from protean.exceptions import ValidationError

DEFAULT_COUNTRY_CODE = "256"

_E164 = re.compile(r"^\+[1-9]\d{7,14}$")
_SEPARATORS = re.compile(r"[\s\-().]")


def normalize_phone(raw: str | None, country_code: str = DEFAULT_COUNTRY_CODE) -> str | None:
    """Return the E.164 form of ``raw`` or None when it cannot be normalized."""
    if not raw:
        return None
    phone = _SEPARATORS.sub("", str(raw))
    if phone.startswith("00"):
        phone = "+" + phone[2:]
    elif phone.startswith(country_code):
        phone = "+" + phone
    elif phone.startswith("0"):
        phone = f"+{country_code}{phone[1:]}"
    elif not phone.startswith("+"):
        phone = f"+{country_code}{phone}"
    return phone if _E164.match(phone) else None


def require_e164(raw: str | None, field: str = "phone") -> str:
    """Normalize ``raw`` or raise a ValidationError naming ``field``."""
    phone = normalize_phone(raw)
    if phone is None:
        if not raw:
            raise ValidationError({field: ["A phone number is required for mobile money payments"]})
        raise ValidationError({field: [f"'{raw}' is not a valid phone number"]})
    return phone
