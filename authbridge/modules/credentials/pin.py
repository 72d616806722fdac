"""
PIN -> provider password derivation.

The account password stored in GoTrue for a trust-PIN user is never chosen by
the user: it is scrypt(pin:user_id:pepper, salt) encoded as base64url. The
salt lives in public.auth_local_pin, the pepper only in server env. Every code
path that sets or checks a PIN password goes through derive_password_from_pin.
"""

import base64
import binascii
import hashlib
import os
import re
from typing import List, Optional

SCRYPT_N = 1 << 13  # 8192
SCRYPT_R = 8
SCRYPT_P = 1
DERIVED_KEY_BYTES = 32
LEGACY_DERIVED_KEY_BYTES = 48  # written by the first trust-PIN release
SALT_BYTES = 16
KDF_LABEL = "scrypt-v1(N=8192,r=8,p=1)"

PIN_PATTERN = re.compile(r"^\d{4,8}$")
_HEX_PREFIX = "\\x"


def b64u(raw: bytes) -> str:
    """Base64url without padding."""
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def is_valid_pin(pin) -> bool:
    return isinstance(pin, str) and bool(PIN_PATTERN.match(pin))


def generate_salt(nbytes: int = SALT_BYTES) -> str:
    return base64.b64encode(os.urandom(nbytes)).decode("ascii")


def normalize_salt(raw: Optional[str]) -> Optional[str]:
    """
    Bring a stored salt into standard base64.

    Rows written by older code hold either a Postgres bytea hex literal
    (``\\x0a1b...``) or base64url text. Returns None when no salt is stored.
    """
    if raw is None:
        return None
    salt = str(raw).strip()
    if not salt:
        return None
    if salt.startswith(_HEX_PREFIX):
        salt = base64.b64encode(bytes.fromhex(salt[len(_HEX_PREFIX):])).decode("ascii")
    salt = salt.replace("-", "+").replace("_", "/")
    return salt + "=" * (-len(salt) % 4)


def _decode_salt(salt_b64: str) -> bytes:
    try:
        return base64.b64decode(salt_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Salt is not valid base64: {e}")


def derive_password_from_pin(
    pin: str,
    user_id: str,
    salt_b64: str,
    pepper: str,
    length: int = DERIVED_KEY_BYTES,
) -> str:
    """Deterministic provider password for (pin, user_id, salt, pepper). No I/O."""
    if not pepper:
        raise ValueError("pepper is required")
    salt = _decode_salt(salt_b64)
    material = f"{pin}:{user_id}:{pepper}".encode("utf-8")
    derived = hashlib.scrypt(
        material,
        salt=salt,
        n=SCRYPT_N,
        r=SCRYPT_R,
        p=SCRYPT_P,
        dklen=length,
    )
    return b64u(derived)


def pepper_candidates(primary: str, previous: Optional[str] = None) -> List[str]:
    """Peppers to try on login, current first; the previous one covers a rotation in progress."""
    peppers = [primary]
    if previous and previous != primary:
        peppers.append(previous)
    return peppers


def password_candidates(pin: str, user_id: str, salt_b64: str, peppers: List[str]) -> List[str]:
    """
    Passwords a stored PIN may map to, current derivation first.

    Accounts set up before the key length was unified still carry the
    48-byte form; pepper rotation adds the previous pepper for each length.
    """
    candidates = []
    for length in (DERIVED_KEY_BYTES, LEGACY_DERIVED_KEY_BYTES):
        for pepper in peppers:
            candidates.append(derive_password_from_pin(pin, user_id, salt_b64, pepper, length))
    return candidates
