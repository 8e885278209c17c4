"""
Signing key handling.

Signer is the capability the transaction layer needs; KeypairSigner is the
in-process implementation backed by a solders Keypair.
"""

from __future__ import annotations

import json
from typing import Protocol, runtime_checkable

import base58
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature

from solconnect.core.errors import InvalidKeyError

SECRET_KEY_LENGTH = 64

INVALID_KEY_MESSAGE = (
    "Invalid private key format. Expected base58 encoded string or JSON array of bytes."
)


@runtime_checkable
class Signer(Protocol):
    """Anything that can sign a serialized message for one address."""

    def sign(self, message: bytes) -> Signature:
        ...

    def public_address(self) -> Pubkey:
        ...


class KeypairSigner:
    """Signer backed by a local ed25519 keypair."""

    __slots__ = ("_keypair",)

    def __init__(self, keypair: Keypair):
        self._keypair = keypair

    def sign(self, message: bytes) -> Signature:
        return self._keypair.sign_message(message)

    def public_address(self) -> Pubkey:
        return self._keypair.pubkey()

    def __repr__(self) -> str:
        return f"KeypairSigner(public_address={self._keypair.pubkey()}, secret=<redacted>)"

    __str__ = __repr__

    def __reduce__(self):
        raise TypeError("KeypairSigner cannot be serialized")


def _keypair_from_bytes(secret: bytes) -> Keypair | None:
    try:
        if len(secret) == SECRET_KEY_LENGTH:
            return Keypair.from_bytes(secret)
    except ValueError:
        return None
    return None


def _decode_base58(text: str) -> bytes | None:
    try:
        return base58.b58decode(text)
    except ValueError:
        return None


def _decode_json_array(text: str) -> bytes | None:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, list):
        return None
    if not all(isinstance(item, int) and not isinstance(item, bool) and 0 <= item <= 255 for item in parsed):
        return None
    return bytes(parsed)


def decode_key(text: str) -> KeypairSigner:
    """Decode a base58 string or JSON byte array into a signer.

    Raises:
        InvalidKeyError: If neither encoding yields a valid 64-byte secret key
    """
    if not isinstance(text, str) or not text.strip():
        raise InvalidKeyError(INVALID_KEY_MESSAGE)
    text = text.strip()

    for decoder in (_decode_base58, _decode_json_array):
        secret = decoder(text)
        if secret is None:
            continue
        keypair = _keypair_from_bytes(secret)
        if keypair is not None:
            return KeypairSigner(keypair)

    raise InvalidKeyError(INVALID_KEY_MESSAGE)
