"""
Authenticated message encryption with AES-256-GCM.

Every call draws a fresh random 12-byte nonce and prepends it to the
ciphertext: nonce (12 bytes) + ciphertext + tag (16 bytes).
"""

import time
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .constants import NONCE_LENGTH, TAG_LENGTH
from .encoding import base64_to_bytes, bytes_to_base64, concat_bytes, rand_bytes
from .errors import AuthenticationFailure, DeserializationError
from .models import EncryptedMessage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecryptedMessage:
    """Plaintext together with the timestamp taken at encryption"""
    plaintext: str
    timestamp: int


def now_millis() -> int:
    """Current time in integer milliseconds"""
    return int(time.time() * 1000)


def _seal(key: bytes, plaintext: bytes, associated_data: Optional[bytes]) -> bytes:
    nonce = rand_bytes(NONCE_LENGTH)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext, associated_data)
    return concat_bytes(nonce, ciphertext)


def _open(key: bytes, blob: bytes, associated_data: Optional[bytes]) -> bytes:
    if len(blob) < NONCE_LENGTH + TAG_LENGTH:
        raise AuthenticationFailure("Message authentication failed")

    nonce = blob[:NONCE_LENGTH]
    actual_ciphertext = blob[NONCE_LENGTH:]
    try:
        return AESGCM(key).decrypt(nonce, actual_ciphertext, associated_data)
    except InvalidTag:
        logger.debug("AES-GCM tag check failed")
        raise AuthenticationFailure("Message authentication failed") from None


def encrypt_message(
    key: bytes,
    plaintext: str,
    associated_data: Optional[bytes] = None,
    timestamp: Optional[int] = None
) -> EncryptedMessage:
    """
    Encrypt a text message using AES-256-GCM.

    Args:
        key: 32-byte session key
        plaintext: Message to encrypt
        associated_data: Additional authenticated data
        timestamp: Encryption time to record, now when not given

    Returns:
        EncryptedMessage with base64(nonce + ciphertext + tag) and the
        encryption timestamp in milliseconds
    """
    blob = _seal(key, plaintext.encode("utf-8"), associated_data)
    if timestamp is None:
        timestamp = now_millis()
    return EncryptedMessage(ciphertext=bytes_to_base64(blob), timestamp=timestamp)


def decrypt_message(
    key: bytes,
    message: Union[EncryptedMessage, Dict[str, Any], str],
    associated_data: Optional[bytes] = None
) -> DecryptedMessage:
    """
    Decrypt a text message using AES-256-GCM.

    Args:
        key: 32-byte session key
        message: EncryptedMessage, its dict form or its JSON
        associated_data: Must equal the data used at encryption

    Returns:
        DecryptedMessage with the original timestamp

    Raises:
        AuthenticationFailure: Tampered, corrupted, wrong key or wrong AAD
        DeserializationError: If the record or its base64 is malformed
    """
    if not isinstance(message, EncryptedMessage):
        message = EncryptedMessage.from_dict(message)

    plaintext = _open(key, base64_to_bytes(message.ciphertext), associated_data)
    try:
        text = plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DeserializationError("Decrypted payload is not UTF-8") from e
    return DecryptedMessage(plaintext=text, timestamp=message.timestamp)


def encrypt_binary(key: bytes, data: bytes) -> bytes:
    """Encrypt an attachment; no associated data"""
    return _seal(key, data, None)


def decrypt_binary(key: bytes, blob: bytes) -> bytes:
    """
    Decrypt an attachment produced by encrypt_binary.

    Raises:
        AuthenticationFailure: If the blob was tampered with or the key is wrong
    """
    return _open(key, blob, None)


def create_aad(sender_id: str, recipient_id: str, timestamp: int) -> bytes:
    """
    Create additional authenticated data for a message.

    This binds the ciphertext to its metadata without encrypting it.
    Both sides must build it from the message metadata.
    """
    return f"{sender_id}:{recipient_id}:{int(timestamp)}".encode("utf-8")
