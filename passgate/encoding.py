"""Unpadded URL-safe base64 codec.

Every binary value exchanged with the browser (challenges, credential
ids, user handles, public keys) travels as base64url text without ``=``
padding, as WebAuthn JSON serialisation expects.
"""

import base64
import binascii
import re

from passgate.exceptions import MalformedEncodingError

_BASE64URL_ALPHABET = re.compile(r"[A-Za-z0-9_-]*")


def encode(data: bytes) -> str:
    """Encode bytes as unpadded base64url text."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def decode(text: str) -> bytes:
    """Decode unpadded (or padded) base64url text.

    Raises:
        MalformedEncodingError: If the length can never be valid base64
            (``len % 4 == 1``) or the text contains characters outside
            the URL-safe alphabet.
    """
    stripped = text.rstrip("=")
    if len(stripped) % 4 == 1:
        raise MalformedEncodingError("Invalid base64url length")
    if not _BASE64URL_ALPHABET.fullmatch(stripped):
        raise MalformedEncodingError("Invalid base64url character")

    padded = stripped + "=" * (-len(stripped) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii"))
    except (binascii.Error, ValueError) as e:
        raise MalformedEncodingError("Failed to decode base64url text") from e
