"""
Identity key management.

Generates, exports, imports and fingerprints long-term identity key pairs,
and wraps the private key in a password-protected backup
(PBKDF2-HMAC-SHA256 + AES-256-GCM).
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .config import CryptoConfig, resolve_config
from .constants import KEY_SIZE, MIN_PBKDF2_ITERATIONS, SALT_LENGTH
from .curves import Curve, PrivateKey, PublicKey, get_curve
from .encoding import (
    base64_to_bytes,
    bytes_equal,
    bytes_to_base64,
    format_fingerprint,
    rand_bytes,
    zero_bytes,
)
from .errors import (
    AuthenticationFailure,
    ConfigError,
    DeserializationError,
    KeyImportError,
)
from .models import EncryptedKeyBackup, ExportedKeyPair

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IdentityKeyPair:
    """
    Long-term identity key pair of one device.

    Attributes:
        public_key: Public key handle
        private_key: Private key handle, excluded from repr
        public_key_raw: Raw public key encoding
        fingerprint: XXXX-XXXX-XXXX-XXXX display string
        curve: Name of the curve the pair lives on
    """
    public_key: PublicKey
    private_key: PrivateKey = field(repr=False)
    public_key_raw: bytes
    fingerprint: str
    curve: str

    @property
    def public_key_base64(self) -> str:
        return bytes_to_base64(self.public_key_raw)


def fingerprint_of(public_key_raw: bytes) -> str:
    """Fingerprint of a raw public key encoding"""
    return format_fingerprint(public_key_raw)


def _curve_by_name(name: str) -> Curve:
    try:
        return get_curve(name)
    except ConfigError as e:
        raise KeyImportError(str(e)) from e


def _pair_from_private(private_key: PrivateKey, curve: Curve) -> IdentityKeyPair:
    public_key = private_key.public_key()
    public_key_raw = curve.public_bytes(public_key)
    return IdentityKeyPair(
        public_key=public_key,
        private_key=private_key,
        public_key_raw=public_key_raw,
        fingerprint=fingerprint_of(public_key_raw),
        curve=curve.name,
    )


def _check_matches(pair: IdentityKeyPair, public_key_raw: bytes, fingerprint: str) -> None:
    if not bytes_equal(pair.public_key_raw, public_key_raw):
        raise KeyImportError("Private key does not match the public key")
    if pair.fingerprint != fingerprint:
        raise KeyImportError("Fingerprint does not match the public key")


def generate_identity_key_pair(config: Optional[CryptoConfig] = None) -> IdentityKeyPair:
    """
    Generate a new identity key pair on the configured curve.

    Args:
        config: Crypto configuration (curve choice)

    Returns:
        IdentityKeyPair with raw public key and fingerprint
    """
    config = resolve_config(config)
    curve = get_curve(config.curve)
    pair = _pair_from_private(curve.generate_private_key(), curve)
    logger.debug("Generated %s identity key pair %s", curve.name, pair.fingerprint)
    return pair


def export_key_pair(pair: IdentityKeyPair) -> ExportedKeyPair:
    """
    Export a key pair to a portable record for device migration.

    The returned record holds the private key unencrypted. Do not send it
    over the network or store it as is; use create_key_backup for that.
    """
    curve = get_curve(pair.curve)
    return ExportedKeyPair(
        public_key=pair.public_key_base64,
        private_key=curve.private_to_pem(pair.private_key),
        fingerprint=pair.fingerprint,
        curve=curve.name,
    )


def import_key_pair(record: Union[ExportedKeyPair, Dict[str, Any], str]) -> IdentityKeyPair:
    """
    Import a key pair from its portable record.

    Args:
        record: ExportedKeyPair, its dict form or its JSON

    Returns:
        The reconstructed IdentityKeyPair

    Raises:
        DeserializationError: If the record or its encodings are malformed
        KeyImportError: If the key material is invalid or inconsistent
    """
    if not isinstance(record, ExportedKeyPair):
        record = ExportedKeyPair.from_dict(record)

    curve = _curve_by_name(record.curve)
    public_key_raw = base64_to_bytes(record.public_key)
    curve.load_public_bytes(public_key_raw)

    pair = _pair_from_private(curve.private_from_pem(record.private_key), curve)
    _check_matches(pair, public_key_raw, record.fingerprint)

    logger.debug("Imported identity key pair %s", pair.fingerprint)
    return pair


def import_public_key(public_key_b64: str, config: Optional[CryptoConfig] = None) -> PublicKey:
    """
    Import a peer's public key from base64.

    Raises:
        DeserializationError: If the text is not base64
        KeyImportError: If the point is invalid, not on the curve or the identity
    """
    config = resolve_config(config)
    curve = get_curve(config.curve)
    return curve.load_public_bytes(base64_to_bytes(public_key_b64))


def derive_backup_key(
    password: str,
    salt: bytes,
    config: Optional[CryptoConfig] = None,
    iterations: Optional[int] = None
) -> bytes:
    """
    Derive an AES-256 key from a password using PBKDF2-HMAC-SHA256.

    Intentionally slow; keep it off latency-sensitive paths.

    Args:
        password: User's password
        salt: Per-backup random salt
        iterations: PBKDF2 rounds, defaults to config.pbkdf2_iterations

    Returns:
        32-byte encryption key
    """
    config = resolve_config(config)
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=iterations if iterations is not None else config.pbkdf2_iterations,
    )
    return kdf.derive(password.encode("utf-8"))


def create_key_backup(
    pair: IdentityKeyPair,
    password: str,
    config: Optional[CryptoConfig] = None
) -> EncryptedKeyBackup:
    """
    Create a password-protected backup of the private key.

    Args:
        pair: Identity key pair to back up
        password: Backup password

    Returns:
        EncryptedKeyBackup with fresh salt and nonce
    """
    config = resolve_config(config)
    curve = get_curve(pair.curve)

    salt = rand_bytes(config.salt_length)
    nonce = rand_bytes(config.nonce_length)
    backup_key = bytearray(derive_backup_key(password, salt, config))
    try:
        private_pem = curve.private_to_pem(pair.private_key).encode("ascii")
        ciphertext = AESGCM(backup_key).encrypt(nonce, private_pem, None)
    finally:
        zero_bytes(backup_key)

    logger.debug("Created key backup for %s", pair.fingerprint)
    return EncryptedKeyBackup(
        ciphertext=bytes_to_base64(ciphertext),
        salt=bytes_to_base64(salt),
        nonce=bytes_to_base64(nonce),
        public_key=pair.public_key_base64,
        fingerprint=pair.fingerprint,
        curve=curve.name,
        iterations=config.pbkdf2_iterations,
    )


def restore_key_from_backup(
    backup: Union[EncryptedKeyBackup, Dict[str, Any], str],
    password: str,
    config: Optional[CryptoConfig] = None
) -> IdentityKeyPair:
    """
    Restore a key pair from an encrypted backup.

    The PBKDF2 round count is taken from the backup record, so backups made
    under a different config still open. The publicKey and fingerprint
    fields are not covered by the GCM tag; they are checked against the
    decrypted private key afterwards and a mismatch raises KeyImportError.

    Args:
        backup: EncryptedKeyBackup, its dict form or its JSON
        password: Backup password

    Returns:
        The restored IdentityKeyPair, with the original fingerprint

    Raises:
        AuthenticationFailure: Wrong password or corrupted backup
        DeserializationError: If the record is malformed, its salt is short
            or its round count is below the minimum
        KeyImportError: If the decrypted key does not match the backup
    """
    config = resolve_config(config)
    if not isinstance(backup, EncryptedKeyBackup):
        backup = EncryptedKeyBackup.from_dict(backup)

    curve = _curve_by_name(backup.curve)
    salt = base64_to_bytes(backup.salt)
    nonce = base64_to_bytes(backup.nonce)
    ciphertext = base64_to_bytes(backup.ciphertext)
    public_key_raw = base64_to_bytes(backup.public_key)
    if len(nonce) != config.nonce_length:
        raise DeserializationError("Invalid backup nonce length")
    if len(salt) < SALT_LENGTH:
        raise DeserializationError("Invalid backup salt length")
    if backup.iterations < MIN_PBKDF2_ITERATIONS:
        raise DeserializationError(f"Backup iterations must be >= {MIN_PBKDF2_ITERATIONS}")

    backup_key = bytearray(derive_backup_key(password, salt, config, backup.iterations))
    try:
        private_pem = AESGCM(backup_key).decrypt(nonce, ciphertext, None)
    except InvalidTag:
        logger.warning("Key backup authentication failed for %s", backup.fingerprint)
        raise AuthenticationFailure("Backup authentication failed") from None
    finally:
        zero_bytes(backup_key)

    pair = _pair_from_private(curve.private_from_pem(private_pem), curve)
    _check_matches(pair, public_key_raw, backup.fingerprint)

    logger.debug("Restored identity key pair %s from backup", pair.fingerprint)
    return pair
