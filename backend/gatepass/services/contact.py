"""Normalization of recipient contact identifiers (e-mail / phone).

Transfers addressed to people who are not registered yet are matched later by
exact comparison of the normalized identifier, so every identifier that is stored
or looked up goes through this module first.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from email_validator import EmailNotValidError, validate_email

from gatepass.core.config import settings
from gatepass.core.exceptions import InvalidRecipientError

# Known calling codes, longest first when matching. West Africa first, then the
# other countries the storefront sells to.
COUNTRY_CODES: dict[str, str] = {
    "226": "Burkina Faso",
    "225": "Côte d'Ivoire",
    "233": "Ghana",
    "221": "Senegal",
    "223": "Mali",
    "227": "Niger",
    "228": "Togo",
    "229": "Benin",
    "234": "Nigeria",
    "212": "Morocco",
    "213": "Algeria",
    "216": "Tunisia",
    "254": "Kenya",
    "255": "Tanzania",
    "256": "Uganda",
    "257": "Burundi",
    "250": "Rwanda",
    "251": "Ethiopia",
    "260": "Zambia",
    "263": "Zimbabwe",
    "27": "South Africa",
    "33": "France",
    "44": "UK",
    "49": "Germany",
    "86": "China",
    "91": "India",
    "1": "USA/Canada",
}
_CODES_LONGEST_FIRST = sorted(COUNTRY_CODES, key=len, reverse=True)

E164_PATTERN = re.compile(r"^\+\d{7,15}$")
MAX_NAME_LENGTH = 255


def normalize_email(raw: str) -> str:
    """Return the canonical lower-case form of ``raw`` or raise InvalidRecipientError."""
    candidate = (raw or "").strip()
    if not candidate:
        raise InvalidRecipientError("Recipient e-mail is empty")
    try:
        result = validate_email(candidate, check_deliverability=False)
    except EmailNotValidError as exc:
        raise InvalidRecipientError(f"Invalid recipient e-mail: {exc}") from exc
    return result.normalized.lower()


def _detect_country_code(digits: str) -> str | None:
    for code in _CODES_LONGEST_FIRST:
        if digits.startswith(code):
            return code
    return None


def normalize_phone(raw: str, default_country_code: str | None = None) -> str:
    """Normalize a phone number to E.164 (``+<country><number>``).

    Numbers without a recognizable country code are treated as local numbers of
    ``default_country_code`` (``DEFAULT_PHONE_COUNTRY_CODE`` when omitted).
    """
    default_country_code = default_country_code or settings.default_phone_country_code
    cleaned = re.sub(r"[^\d+]", "", (raw or "").strip())
    has_plus = cleaned.startswith("+")
    digits = cleaned.replace("+", "")
    if not digits:
        raise InvalidRecipientError("Recipient phone is empty")

    if has_plus:
        normalized = "+" + digits
    elif digits.startswith("00"):
        # International dialling prefix
        normalized = "+" + digits[2:]
    else:
        local = digits.lstrip("0")
        if _detect_country_code(local) and len(local) > 8:
            normalized = "+" + local
        else:
            normalized = f"+{default_country_code}{local}"

    if not E164_PATTERN.match(normalized):
        raise InvalidRecipientError(f"Invalid recipient phone number: {raw!r}")
    return normalized


@dataclass(frozen=True)
class RecipientContact:
    """An unresolved recipient: exactly one of ``email``/``phone`` is set."""

    email: str | None = None
    phone: str | None = None
    name: str | None = None

    @property
    def identifier(self) -> str:
        return self.email or self.phone or ""

    @property
    def kind(self) -> str:
        return "email" if self.email else "phone"


def normalize_recipient(email: str | None = None, phone: str | None = None, name: str | None = None) -> RecipientContact:
    """Check the "exactly one identifier" rule and normalize what was given."""
    email = (email or "").strip() or None
    phone = (phone or "").strip() or None
    if email and phone:
        raise InvalidRecipientError("Provide either a recipient e-mail or a phone number, not both")
    if not email and not phone:
        raise InvalidRecipientError("A recipient e-mail or phone number is required")
    name = (name or "").strip() or None
    if name and len(name) > MAX_NAME_LENGTH:
        raise InvalidRecipientError("Recipient name is too long")
    if email:
        return RecipientContact(email=normalize_email(email), name=name)
    return RecipientContact(phone=normalize_phone(phone or ""), name=name)
