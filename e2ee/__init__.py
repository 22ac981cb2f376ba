"""
Cryptographic core for end-to-end encrypted chat.

Implements:
- Identity key pairs (P-256 or X25519) with fingerprints
- Password-protected key backups (PBKDF2-HMAC-SHA256 + AES-256-GCM)
- ECDH + HKDF session keys with a fingerprint tie-break for key roles
- AES-256-GCM message encryption with associated data
"""

from .config import CryptoConfig, DEFAULT_CONFIG
from .errors import (
    CryptoError,
    EntropyFailure,
    KeyImportError,
    DeserializationError,
    AgreementError,
    AuthenticationFailure,
    ConfigError,
)
from .encoding import (
    bytes_to_base64,
    base64_to_bytes,
    bytes_to_hex,
    hex_to_bytes,
    rand_bytes,
    format_fingerprint,
    bytes_equal,
    constant_time_compare,
    concat_bytes,
)
from .models import (
    EncryptedMessage,
    ExportedKeyPair,
    EncryptedKeyBackup,
    SecureMessagePayload,
)
from .identity import (
    IdentityKeyPair,
    generate_identity_key_pair,
    export_key_pair,
    import_key_pair,
    import_public_key,
    derive_backup_key,
    create_key_backup,
    restore_key_from_backup,
    fingerprint_of,
)
from .agreement import (
    SessionKeys,
    derive_shared_secret,
    derive_session_key,
    derive_bidirectional_keys,
    perform_key_exchange,
)
from .cipher import (
    DecryptedMessage,
    encrypt_message,
    decrypt_message,
    encrypt_binary,
    decrypt_binary,
    create_aad,
)
from .session import (
    SecureSession,
    establish_secure_session,
    encrypt_session_message,
    decrypt_session_message,
)
from .selftest import SelfTestReport, SelfTestStep, run_crypto_self_test

__version__ = "1.0.0"
__all__ = [
    # Config
    'CryptoConfig',
    'DEFAULT_CONFIG',
    # Errors
    'CryptoError',
    'EntropyFailure',
    'KeyImportError',
    'DeserializationError',
    'AgreementError',
    'AuthenticationFailure',
    'ConfigError',
    # Encoding
    'bytes_to_base64',
    'base64_to_bytes',
    'bytes_to_hex',
    'hex_to_bytes',
    'rand_bytes',
    'format_fingerprint',
    'bytes_equal',
    'constant_time_compare',
    'concat_bytes',
    # Records
    'EncryptedMessage',
    'ExportedKeyPair',
    'EncryptedKeyBackup',
    'SecureMessagePayload',
    # Identity
    'IdentityKeyPair',
    'generate_identity_key_pair',
    'export_key_pair',
    'import_key_pair',
    'import_public_key',
    'derive_backup_key',
    'create_key_backup',
    'restore_key_from_backup',
    'fingerprint_of',
    # Agreement
    'SessionKeys',
    'derive_shared_secret',
    'derive_session_key',
    'derive_bidirectional_keys',
    'perform_key_exchange',
    # Cipher
    'DecryptedMessage',
    'encrypt_message',
    'decrypt_message',
    'encrypt_binary',
    'decrypt_binary',
    'create_aad',
    # Session
    'SecureSession',
    'establish_secure_session',
    'encrypt_session_message',
    'decrypt_session_message',
    # Self-test
    'SelfTestReport',
    'SelfTestStep',
    'run_crypto_self_test',
]
