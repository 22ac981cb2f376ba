"""Error types for the E2EE core."""


class CryptoError(Exception):
    """Base exception for cryptographic errors"""
    pass


class EntropyFailure(CryptoError):
    """The secure random source is unavailable. Fatal, never retried."""
    pass


class KeyImportError(CryptoError):
    """Key material is not a valid point or scalar on the expected curve."""
    pass


class DeserializationError(CryptoError):
    """Malformed encoding or record (base64, hex, PEM, JSON)."""
    pass


class AgreementError(CryptoError):
    """Peer public key rejected during key agreement."""
    pass


class AuthenticationFailure(CryptoError):
    """
    AEAD tag verification failed.

    Raised for a wrong backup password, a tampered or corrupted ciphertext,
    a wrong key and mismatched associated data alike. The message never
    reveals which of these happened.
    """
    pass


class ConfigError(CryptoError, ValueError):
    """Configuration error."""
    pass
