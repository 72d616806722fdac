"""
Identifier normalization for OTP and PIN flows.

Phone numbers are only ever stored, looked up or sent to in the canonical
Nepal mobile form: +977 followed by 9[678] and eight more digits.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
NEPAL_MOBILE = re.compile(r"^\+9779[678]\d{8}$")

_PHONE_SEPARATORS = re.compile(r"[\s\-().]")
_LOCAL_MOBILE = re.compile(r"^9[678]\d{8}$")


class IdentifierKind(str, Enum):
    EMAIL = "email"
    PHONE = "phone"


@dataclass(frozen=True)
class Identifier:
    kind: IdentifierKind
    value: str

    @classmethod
    def email(cls, value: str) -> "Identifier":
        return cls(IdentifierKind.EMAIL, value)

    @classmethod
    def phone(cls, value: str) -> "Identifier":
        return cls(IdentifierKind.PHONE, value)

    @property
    def rate_key(self) -> str:
        return f"otp:{self.kind.value}:{self.value}"

    @property
    def masked(self) -> str:
        return mask_identifier(self.value)


def normalize_email(value: Optional[str]) -> Optional[str]:
    """Lower-cased, trimmed email, or None when it does not look like one."""
    if not value:
        return None
    email = value.strip().lower()
    if not EMAIL_PATTERN.match(email):
        return None
    return email


def canonicalize_nepal_phone(value: Optional[str]) -> Optional[str]:
    """
    Reduce a Nepal mobile number to +9779XXXXXXXXX.

    Accepts 98XXXXXXXX, 098XXXXXXXX, 97798XXXXXXXX, +97798XXXXXXXX and
    0097798XXXXXXXX, with spaces, dashes, dots or parentheses. Anything else
    (other countries, landlines, wrong lengths) returns None.
    """
    if not value:
        return None
    raw = _PHONE_SEPARATORS.sub("", value.strip())
    if raw.startswith("+"):
        raw = raw[1:]
    elif raw.startswith("00"):
        raw = raw[2:]
    if not raw.isdigit():
        return None
    if raw.startswith("0") and _LOCAL_MOBILE.match(raw[1:]):
        raw = raw[1:]
    if _LOCAL_MOBILE.match(raw):
        raw = "977" + raw
    canonical = "+" + raw
    if not NEPAL_MOBILE.match(canonical):
        return None
    return canonical


def mask_identifier(value: str) -> str:
    """Log-safe rendering of an email or phone number."""
    s = (value or "").strip()
    if EMAIL_PATTERN.match(s):
        local, domain = s.split("@", 1)
        masked_local = local[0] if len(local) <= 2 else local[0] + "***" + local[-1]
        return f"{masked_local}@{domain}"
    if s.startswith("+") and s[1:].isdigit():
        return s[:4] + "****" + s[-2:]
    return "***"
