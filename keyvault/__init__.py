"""
Client-side key vault for end-to-end encrypted chat.

Keeps identity private keys in password-protected backups and remembers
peers' public keys and fingerprints.
"""

from .storage import KeyVault, PeerRecord, VaultError, IdentityNotFound, IdentityExists

__all__ = [
    'KeyVault',
    'PeerRecord',
    'VaultError',
    'IdentityNotFound',
    'IdentityExists'
]
