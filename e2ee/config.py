"""Tunable parameters for the E2EE core."""

from dataclasses import dataclass
from typing import Optional, Tuple

from .constants import (
    DEFAULT_CURVE,
    CURVE_P256,
    CURVE_X25519,
    PBKDF2_ITERATIONS,
    MIN_PBKDF2_ITERATIONS,
    SALT_LENGTH,
    NONCE_LENGTH,
    HKDF_INFO,
    SESSION_KEY_1_INFO,
    SESSION_KEY_2_INFO,
)
from .errors import ConfigError

SUPPORTED_CURVES = (CURVE_P256, CURVE_X25519)


@dataclass(frozen=True)
class CryptoConfig:
    """
    Parameters shared by the identity, agreement and cipher layers.

    Attributes:
        curve: Name of the agreement curve ("P-256" or "X25519")
        pbkdf2_iterations: Rounds of PBKDF2-HMAC-SHA256 for key backups
        salt_length: Length of the per-backup random salt
        nonce_length: AES-GCM nonce length
        hkdf_info: Default HKDF context string
        session_key_labels: HKDF context strings for key 1 and key 2
    """
    curve: str = DEFAULT_CURVE
    pbkdf2_iterations: int = PBKDF2_ITERATIONS
    salt_length: int = SALT_LENGTH
    nonce_length: int = NONCE_LENGTH
    hkdf_info: bytes = HKDF_INFO
    session_key_labels: Tuple[bytes, bytes] = (SESSION_KEY_1_INFO, SESSION_KEY_2_INFO)

    def validate(self) -> None:
        """Validate the configuration, raises ConfigError if invalid."""
        if self.curve not in SUPPORTED_CURVES:
            raise ConfigError(f"Unsupported curve: {self.curve}")
        if self.pbkdf2_iterations < MIN_PBKDF2_ITERATIONS:
            raise ConfigError(f"pbkdf2_iterations must be >= {MIN_PBKDF2_ITERATIONS}")
        if self.salt_length < SALT_LENGTH:
            raise ConfigError(f"salt_length must be >= {SALT_LENGTH}")
        if self.nonce_length != NONCE_LENGTH:
            raise ConfigError(f"nonce_length must be {NONCE_LENGTH}")
        if len(self.session_key_labels) != 2 or self.session_key_labels[0] == self.session_key_labels[1]:
            raise ConfigError("session_key_labels must be two distinct labels")


DEFAULT_CONFIG = CryptoConfig()


def resolve_config(config: Optional[CryptoConfig] = None) -> CryptoConfig:
    """Return a validated config, falling back to DEFAULT_CONFIG."""
    if config is None:
        return DEFAULT_CONFIG
    config.validate()
    return config
