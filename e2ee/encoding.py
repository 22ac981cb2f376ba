"""
Encoding helpers for the E2EE core.

Pure functions for converting between bytes and their text encodings,
reading the secure random source, and formatting key fingerprints.
"""

import os
import re
import hmac
import base64
import binascii

from .constants import FINGERPRINT_BYTES, FINGERPRINT_GROUP
from .errors import DeserializationError, EntropyFailure

_HEX_RE = re.compile(r"(?:[0-9a-fA-F]{2})*")


def bytes_to_base64(data: bytes) -> str:
    """Encode bytes as standard base64 text"""
    return base64.b64encode(data).decode("ascii")


def base64_to_bytes(text: str) -> bytes:
    """
    Decode standard base64 text.

    Args:
        text: Base64 string (with padding)

    Returns:
        Decoded bytes

    Raises:
        DeserializationError: If the text is not valid base64
    """
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise DeserializationError(f"Invalid base64: {e}") from e


def bytes_to_hex(data: bytes) -> str:
    """Encode bytes as lowercase hex, two digits per byte"""
    return data.hex()


def hex_to_bytes(text: str) -> bytes:
    """
    Decode a hex string of even length, without separators.

    Raises:
        DeserializationError: If the text is not valid hex
    """
    if not isinstance(text, str) or not _HEX_RE.fullmatch(text):
        raise DeserializationError("Invalid hex: expected pairs of hex digits")
    return bytes.fromhex(text)


def rand_bytes(n: int) -> bytes:
    """
    Generate n random bytes using OS-provided secure random.

    Raises:
        EntropyFailure: If the OS random source is unavailable
    """
    try:
        return os.urandom(n)
    except (OSError, NotImplementedError) as e:
        raise EntropyFailure("Secure random source unavailable") from e


def format_fingerprint(raw_public_key: bytes) -> str:
    """
    Generate a human-readable key fingerprint.

    Uses the first 8 bytes of the raw public key encoding, without hashing,
    so that fingerprints stay compatible with existing peers.

    Args:
        raw_public_key: Raw public key encoding

    Returns:
        Fingerprint in the form XXXX-XXXX-XXXX-XXXX
    """
    shortened = bytes_to_hex(raw_public_key[:FINGERPRINT_BYTES]).upper()
    groups = [
        shortened[i:i + FINGERPRINT_GROUP]
        for i in range(0, len(shortened), FINGERPRINT_GROUP)
    ]
    return "-".join(groups)


def bytes_equal(a: bytes, b: bytes) -> bool:
    """Plain equality with early exit. Not for secrets."""
    return a == b


def constant_time_compare(a: bytes, b: bytes) -> bool:
    """
    Constant-time comparison to prevent timing attacks.

    Only a length mismatch returns early; the position of a differing
    byte does not affect timing.

    Args:
        a: First byte string
        b: Second byte string

    Returns:
        True if equal, False otherwise
    """
    if len(a) != len(b):
        return False
    return hmac.compare_digest(a, b)


def concat_bytes(*parts: bytes) -> bytes:
    """Concatenate byte strings"""
    return b"".join(parts)


def zero_bytes(data: bytearray) -> None:
    """
    Overwrite a bytearray holding key material.
    Note: Python doesn't guarantee memory clearing, but we overwrite anyway.
    """
    for i in range(len(data)):
        data[i] = 0
