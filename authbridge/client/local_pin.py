"""
Device-local PIN secret.

A random 32-byte secret sealed with AES-GCM under a PBKDF2-SHA256 key from
the PIN. Unlocking proves PIN knowledge on this device only; the secret is
never sent anywhere and is unrelated to the provider password.
"""

import base64
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from authbridge.modules.credentials.pin import is_valid_pin

PBKDF2_ITERATIONS = 100_000
SECRET_BYTES = 32
SALT_BYTES = 16
IV_BYTES = 12
STORAGE_VERSION = "gn.pin.v1"


class InvalidPinError(Exception):
    """PIN is malformed or does not unlock the stored secret."""


@dataclass(frozen=True)
class LocalPinSecret:
    ciphertext: bytes
    iv: bytes
    salt: bytes

    def to_json(self) -> str:
        return json.dumps({
            "version": STORAGE_VERSION,
            "ciphertext": base64.b64encode(self.ciphertext).decode("ascii"),
            "iv": base64.b64encode(self.iv).decode("ascii"),
            "salt": base64.b64encode(self.salt).decode("ascii"),
        })

    @classmethod
    def from_json(cls, raw: str) -> "LocalPinSecret":
        data = json.loads(raw)
        return cls(
            ciphertext=base64.b64decode(data["ciphertext"]),
            iv=base64.b64decode(data["iv"]),
            salt=base64.b64decode(data["salt"]),
        )


def _pin_key(pin: str, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=salt, iterations=PBKDF2_ITERATIONS)
    return kdf.derive(pin.encode("utf-8"))


def seal_secret(pin: str) -> Tuple[LocalPinSecret, bytes]:
    """Create a fresh secret sealed under pin. Returns the sealed form and the plaintext."""
    if not is_valid_pin(pin):
        raise InvalidPinError("PIN must be 4-8 digits")
    secret = os.urandom(SECRET_BYTES)
    salt = os.urandom(SALT_BYTES)
    iv = os.urandom(IV_BYTES)
    ciphertext = AESGCM(_pin_key(pin, salt)).encrypt(iv, secret, None)
    return LocalPinSecret(ciphertext=ciphertext, iv=iv, salt=salt), secret


def unseal_secret(pin: str, sealed: LocalPinSecret) -> bytes:
    if not is_valid_pin(pin):
        raise InvalidPinError("PIN must be 4-8 digits")
    try:
        return AESGCM(_pin_key(pin, sealed.salt)).decrypt(sealed.iv, sealed.ciphertext, None)
    except InvalidTag:
        raise InvalidPinError("PIN does not match")


class LocalPinVault:
    """File-backed store for one sealed secret (the device's localStorage slot)."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def has_pin(self) -> bool:
        return self.path.exists()

    def set_pin(self, pin: str) -> bytes:
        sealed, secret = seal_secret(pin)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(sealed.to_json(), encoding="utf-8")
        os.chmod(self.path, 0o600)
        return secret

    def load(self) -> Optional[LocalPinSecret]:
        if not self.path.exists():
            return None
        return LocalPinSecret.from_json(self.path.read_text(encoding="utf-8"))

    def unlock(self, pin: str) -> bytes:
        sealed = self.load()
        if sealed is None:
            raise InvalidPinError("No PIN set on this device")
        return unseal_secret(pin, sealed)

    def verify_pin(self, pin: str) -> bool:
        try:
            self.unlock(pin)
        except InvalidPinError:
            return False
        return True

    def clear(self):
        if self.path.exists():
            self.path.unlink()
