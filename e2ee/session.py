"""
Secure session API used by the chat layer.

Combines key agreement and message encryption. Associated data is always
derived from the payload's sender, recipient and timestamp, so callers
cannot forget to bind it.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Union

from .agreement import derive_bidirectional_keys
from .cipher import DecryptedMessage, create_aad, decrypt_message, encrypt_message, now_millis
from .config import CryptoConfig, resolve_config
from .errors import AgreementError
from .identity import IdentityKeyPair, fingerprint_of, import_public_key
from .curves import get_curve
from .models import SecureMessagePayload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SecureSession:
    """
    An established conversation with one peer.

    Attributes:
        session_id: "<my fingerprint>-<their fingerprint>-<created_at>"
        send_key: Key for messages we send
        receive_key: Key for messages we receive
        their_fingerprint: Peer fingerprint
        created_at: Establishment time in milliseconds
    """
    session_id: str
    send_key: bytes = field(repr=False)
    receive_key: bytes = field(repr=False)
    their_fingerprint: str
    created_at: int


def establish_secure_session(
    my_pair: IdentityKeyPair,
    their_public_key_b64: str,
    their_fingerprint: str,
    config: Optional[CryptoConfig] = None
) -> SecureSession:
    """
    Establish a session from a peer's public key and fingerprint.

    Args:
        my_pair: Our identity key pair
        their_public_key_b64: Peer public key as delivered by the transport
        their_fingerprint: Peer fingerprint as delivered by the transport

    Returns:
        SecureSession holding our directional keys

    Raises:
        KeyImportError: If the peer public key is invalid
        AgreementError: If the fingerprint does not belong to the key
    """
    config = resolve_config(config)
    if config.curve != my_pair.curve:
        config = replace(config, curve=my_pair.curve)

    their_public = import_public_key(their_public_key_b64, config)
    their_raw = get_curve(my_pair.curve).public_bytes(their_public)
    if fingerprint_of(their_raw) != their_fingerprint:
        raise AgreementError("Peer fingerprint does not match the peer public key")

    keys = derive_bidirectional_keys(
        my_pair,
        their_public,
        my_pair.fingerprint,
        their_fingerprint,
        config
    )

    created_at = now_millis()
    session_id = f"{my_pair.fingerprint}-{their_fingerprint}-{created_at}"
    logger.debug("Established session %s", session_id)

    return SecureSession(
        session_id=session_id,
        send_key=keys.send_key,
        receive_key=keys.receive_key,
        their_fingerprint=their_fingerprint,
        created_at=created_at,
    )


def encrypt_session_message(
    session: SecureSession,
    sender_id: str,
    recipient_id: str,
    message: str
) -> SecureMessagePayload:
    """
    Encrypt a message in a session.

    The encryption timestamp is bound into the associated data together
    with both ids.
    """
    timestamp = now_millis()
    aad = create_aad(sender_id, recipient_id, timestamp)
    encrypted = encrypt_message(session.send_key, message, aad, timestamp)

    return SecureMessagePayload(
        session_id=session.session_id,
        sender_id=sender_id,
        recipient_id=recipient_id,
        encrypted=encrypted,
    )


def decrypt_session_message(
    session: SecureSession,
    payload: Union[SecureMessagePayload, Dict[str, Any], str]
) -> DecryptedMessage:
    """
    Decrypt a message received in a session.

    Raises:
        AuthenticationFailure: If the ciphertext or any bound metadata was altered
        DeserializationError: If the payload is malformed
    """
    if not isinstance(payload, SecureMessagePayload):
        payload = SecureMessagePayload.from_dict(payload)

    aad = create_aad(payload.sender_id, payload.recipient_id, payload.encrypted.timestamp)
    return decrypt_message(session.receive_key, payload.encrypted, aad)
