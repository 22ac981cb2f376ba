"""Constants for the Chit-Chat E2EE protocol."""

# Key derivation parameters
PBKDF2_ITERATIONS: int = 310000  # OWASP recommendation for PBKDF2-HMAC-SHA256
MIN_PBKDF2_ITERATIONS: int = 300000
SALT_LENGTH: int = 32
NONCE_LENGTH: int = 12  # AES-GCM recommended IV length
TAG_LENGTH: int = 16  # 128-bit authentication tag

# Key sizes in bytes
KEY_SIZE: int = 32  # AES-256
SHARED_SECRET_SIZE: int = 32

# HKDF info strings
HKDF_INFO: bytes = b"chit-chat-e2ee-v1"
SESSION_KEY_1_INFO: bytes = b"chit-chat-session-key-1"
SESSION_KEY_2_INFO: bytes = b"chit-chat-session-key-2"

# Fingerprint: first 8 bytes of the raw public key, four groups of 4 hex digits
FINGERPRINT_BYTES: int = 8
FINGERPRINT_GROUP: int = 4

# Curves
CURVE_P256: str = "P-256"
CURVE_X25519: str = "X25519"
DEFAULT_CURVE: str = CURVE_P256
