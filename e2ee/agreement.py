"""
Session key agreement.

ECDH between two identities followed by HKDF-SHA256. Both parties derive
the same pair of directional keys without any negotiation message: the
fingerprints they already know decide which key each side sends with.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .config import CryptoConfig, resolve_config
from .constants import HKDF_INFO, KEY_SIZE
from .curves import PrivateKey, PublicKey, curve_for_public_key, get_curve
from .identity import IdentityKeyPair

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionKeys:
    """
    Directional session keys of one party.

    Party A's send_key is party B's receive_key and vice versa.
    """
    send_key: bytes = field(repr=False)
    receive_key: bytes = field(repr=False)


def derive_shared_secret(my_private: PrivateKey, their_public: PublicKey) -> bytes:
    """
    Perform ECDH key agreement.

    Args:
        my_private: Our private key
        their_public: Their public key handle

    Returns:
        32-byte shared secret

    Raises:
        AgreementError: If the peer key is invalid or on another curve
    """
    curve = curve_for_public_key(their_public)
    return curve.exchange(my_private, their_public)


def derive_session_key(
    shared_secret: bytes,
    salt: Optional[bytes] = None,
    info: bytes = HKDF_INFO
) -> bytes:
    """
    Derive an AES-256 session key with HKDF-SHA256.

    Args:
        shared_secret: ECDH output
        salt: Extract salt, 32 zero bytes when not given
        info: Context string; distinct labels give independent keys

    Returns:
        32-byte key
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt if salt is not None else bytes(KEY_SIZE),
        info=info
    )
    return hkdf.derive(shared_secret)


def perform_key_exchange(
    my_pair: IdentityKeyPair,
    their_public: PublicKey,
    salt: Optional[bytes] = None,
    config: Optional[CryptoConfig] = None
) -> bytes:
    """Derive a single session key with another party"""
    config = resolve_config(config)
    shared_secret = derive_shared_secret(my_pair.private_key, their_public)
    return derive_session_key(shared_secret, salt, config.hkdf_info)


def _i_am_lower(
    my_pair: IdentityKeyPair,
    their_public: PublicKey,
    my_fingerprint: str,
    their_fingerprint: str
) -> bool:
    # Code-point order; fingerprints are ASCII so this is byte order
    if my_fingerprint != their_fingerprint:
        return my_fingerprint < their_fingerprint
    # Truncated fingerprints can collide; the full encodings cannot
    their_raw = get_curve(my_pair.curve).public_bytes(their_public)
    return my_pair.public_key_raw < their_raw


def derive_bidirectional_keys(
    my_pair: IdentityKeyPair,
    their_public: PublicKey,
    my_fingerprint: str,
    their_fingerprint: str,
    config: Optional[CryptoConfig] = None
) -> SessionKeys:
    """
    Derive send and receive keys for a conversation.

    The party whose fingerprint sorts lower sends with key 1 and receives
    with key 2; the other party takes the opposite assignment. Equal
    fingerprints fall back to the raw public keys. A session with oneself
    resolves to "not lower" on both sides.

    Args:
        my_pair: Our identity key pair
        their_public: Their public key handle
        my_fingerprint: Our fingerprint
        their_fingerprint: Their fingerprint

    Returns:
        SessionKeys for our side

    Raises:
        AgreementError: If the peer key is invalid
    """
    config = resolve_config(config)
    shared_secret = derive_shared_secret(my_pair.private_key, their_public)

    info1, info2 = config.session_key_labels
    key1 = derive_session_key(shared_secret, None, info1)
    key2 = derive_session_key(shared_secret, None, info2)

    lower = _i_am_lower(my_pair, their_public, my_fingerprint, their_fingerprint)
    logger.debug(
        "Derived session keys %s -> %s (sending with key %d)",
        my_fingerprint, their_fingerprint, 1 if lower else 2
    )
    if lower:
        return SessionKeys(send_key=key1, receive_key=key2)
    return SessionKeys(send_key=key2, receive_key=key1)
