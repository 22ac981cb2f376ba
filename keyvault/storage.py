"""
Local key vault for the chat client.

Stores identity key backups and known peers in SQLite. Private keys only
ever reach disk inside a password-protected EncryptedKeyBackup; everything
else stored here is public (keys, fingerprints, timestamps).
"""

import logging
import sqlite3
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

from e2ee import (
    CryptoConfig,
    EncryptedKeyBackup,
    IdentityKeyPair,
    AgreementError,
    create_key_backup,
    fingerprint_of,
    generate_identity_key_pair,
    import_public_key,
    restore_key_from_backup,
    bytes_to_base64,
)
from e2ee.cipher import now_millis
from e2ee.config import resolve_config
from e2ee.constants import PBKDF2_ITERATIONS
from e2ee.curves import get_curve

logger = logging.getLogger(__name__)


class VaultError(Exception):
    """Base exception for key vault errors"""
    pass


class IdentityNotFound(VaultError):
    pass


class IdentityExists(VaultError):
    pass


@dataclass(frozen=True)
class PeerRecord:
    """Public key material of a peer, as delivered by the transport"""
    peer_id: str
    public_key: str
    fingerprint: str
    curve: str
    created_at: int
    last_activity: int


class KeyVault:
    """
    Manages identity key backups and peer keys for one device.

    Generation, backup, restore and password changes for the same identity
    are serialized by a per-identity lock. A failed operation leaves the
    stored rows untouched.
    """

    def __init__(self, path: Union[str, Path] = "client_data/vault.db", config: Optional[CryptoConfig] = None):
        """
        Open (or create) a vault.

        Args:
            path: SQLite database file, or ":memory:"
            config: Crypto configuration for new identities
        """
        self.config = resolve_config(config)
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        self.db: Optional[sqlite3.Connection] = sqlite3.connect(self.path, check_same_thread=False)
        self._db_lock = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._init_database()

    def __enter__(self) -> "KeyVault":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _init_database(self):
        """Initialize SQLite tables"""
        with self._db_lock:
            cursor = self.db.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS identities (
                    identity_id TEXT PRIMARY KEY,
                    public_key TEXT NOT NULL,
                    fingerprint TEXT NOT NULL,
                    curve TEXT NOT NULL,
                    encrypted_private_key TEXT NOT NULL,
                    salt TEXT NOT NULL,
                    iv TEXT NOT NULL,
                    iterations INTEGER NOT NULL,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS peers (
                    peer_id TEXT PRIMARY KEY,
                    public_key TEXT NOT NULL,
                    fingerprint TEXT NOT NULL,
                    curve TEXT NOT NULL,
                    created_at INTEGER NOT NULL,
                    last_activity INTEGER NOT NULL
                )
            """)

            # Vaults written before backups recorded their PBKDF2 rounds
            cursor.execute("PRAGMA table_info(identities)")
            columns = [row[1] for row in cursor.fetchall()]
            if "iterations" not in columns:
                cursor.execute(
                    f"ALTER TABLE identities ADD COLUMN iterations INTEGER NOT NULL DEFAULT {PBKDF2_ITERATIONS}"
                )

            self.db.commit()

    def _identity_lock(self, identity_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(identity_id)
            if lock is None:
                lock = self._locks[identity_id] = threading.Lock()
            return lock

    def _fetch_backup(self, identity_id: str) -> Optional[EncryptedKeyBackup]:
        with self._db_lock:
            cursor = self.db.cursor()
            cursor.execute(
                "SELECT encrypted_private_key, salt, iv, public_key, fingerprint, curve, iterations "
                "FROM identities WHERE identity_id = ?",
                (identity_id,)
            )
            row = cursor.fetchone()

        if not row:
            return None
        ciphertext, salt, iv, public_key, fingerprint, curve, iterations = row
        return EncryptedKeyBackup(
            ciphertext=ciphertext,
            salt=salt,
            nonce=iv,
            public_key=public_key,
            fingerprint=fingerprint,
            curve=curve,
            iterations=iterations,
        )

    def _write_backup(self, identity_id: str, backup: EncryptedKeyBackup, replace: bool):
        now = now_millis()
        with self._db_lock:
            cursor = self.db.cursor()
            if replace:
                cursor.execute(
                    "UPDATE identities SET public_key = ?, fingerprint = ?, curve = ?, "
                    "encrypted_private_key = ?, salt = ?, iv = ?, iterations = ?, updated_at = ? WHERE identity_id = ?",
                    (backup.public_key, backup.fingerprint, backup.curve, backup.ciphertext,
                     backup.salt, backup.nonce, backup.iterations, now, identity_id)
                )
            else:
                cursor.execute(
                    "INSERT INTO identities (identity_id, public_key, fingerprint, curve, "
                    "encrypted_private_key, salt, iv, iterations, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (identity_id, backup.public_key, backup.fingerprint, backup.curve,
                     backup.ciphertext, backup.salt, backup.nonce, backup.iterations, now, now)
                )
            self.db.commit()

    def has_identity(self, identity_id: str) -> bool:
        return self._fetch_backup(identity_id) is not None

    def create_identity(self, identity_id: str, password: str) -> IdentityKeyPair:
        """
        Generate a new identity and store its password-protected backup.

        Args:
            identity_id: Local name of the identity
            password: Password protecting the private key

        Returns:
            The new IdentityKeyPair

        Raises:
            IdentityExists: If the identity is already stored
        """
        with self._identity_lock(identity_id):
            if self.has_identity(identity_id):
                raise IdentityExists(f"Identity '{identity_id}' already exists")

            pair = generate_identity_key_pair(self.config)
            backup = create_key_backup(pair, password, self.config)
            self._write_backup(identity_id, backup, replace=False)

        logger.info("Created identity %s (%s)", identity_id, pair.fingerprint)
        return pair

    def unlock_identity(self, identity_id: str, password: str) -> IdentityKeyPair:
        """
        Restore an identity key pair with its password.

        Raises:
            IdentityNotFound: If no such identity is stored
            AuthenticationFailure: Wrong password or corrupted backup
        """
        with self._identity_lock(identity_id):
            backup = self.export_backup(identity_id)
            return restore_key_from_backup(backup, password, self.config)

    def change_password(self, identity_id: str, old_password: str, new_password: str) -> EncryptedKeyBackup:
        """
        Re-encrypt an identity backup under a new password.

        Raises:
            IdentityNotFound: If no such identity is stored
            AuthenticationFailure: If the old password is wrong
        """
        with self._identity_lock(identity_id):
            pair = restore_key_from_backup(self.export_backup(identity_id), old_password, self.config)
            backup = create_key_backup(pair, new_password, self.config)
            self._write_backup(identity_id, backup, replace=True)

        logger.info("Changed password of identity %s", identity_id)
        return backup

    def export_backup(self, identity_id: str) -> EncryptedKeyBackup:
        """
        Get the stored backup record of an identity.

        Raises:
            IdentityNotFound: If no such identity is stored
        """
        backup = self._fetch_backup(identity_id)
        if backup is None:
            raise IdentityNotFound(f"Identity '{identity_id}' not found")
        return backup

    def import_backup(
        self,
        identity_id: str,
        backup: EncryptedKeyBackup,
        password: str,
        replace: bool = False
    ) -> IdentityKeyPair:
        """
        Store a backup made elsewhere, after checking it opens with the password.

        Raises:
            IdentityExists: If the identity exists and replace is False
            AuthenticationFailure: If the password does not open the backup
        """
        with self._identity_lock(identity_id):
            exists = self.has_identity(identity_id)
            if exists and not replace:
                raise IdentityExists(f"Identity '{identity_id}' already exists")

            pair = restore_key_from_backup(backup, password, self.config)
            self._write_backup(identity_id, backup, replace=exists)

        logger.info("Imported identity %s (%s)", identity_id, pair.fingerprint)
        return pair

    def delete_identity(self, identity_id: str) -> bool:
        """Delete an identity backup. Returns True if a row was removed."""
        with self._identity_lock(identity_id):
            with self._db_lock:
                cursor = self.db.cursor()
                cursor.execute("DELETE FROM identities WHERE identity_id = ?", (identity_id,))
                self.db.commit()
                deleted = cursor.rowcount > 0

            with self._locks_guard:
                self._locks.pop(identity_id, None)
        return deleted

    def list_identities(self) -> List[str]:
        with self._db_lock:
            cursor = self.db.cursor()
            cursor.execute("SELECT identity_id FROM identities ORDER BY identity_id")
            return [row[0] for row in cursor.fetchall()]

    def save_peer(self, peer_id: str, public_key: str, fingerprint: str) -> PeerRecord:
        """
        Remember a peer's public key and fingerprint.

        The key is stored in its canonical raw encoding and the fingerprint
        is checked against that encoding, matching establish_secure_session.

        Raises:
            KeyImportError: If the public key is invalid
            AgreementError: If the fingerprint does not belong to the key
        """
        curve = get_curve(self.config.curve)
        raw = curve.public_bytes(import_public_key(public_key, self.config))
        if fingerprint_of(raw) != fingerprint:
            raise AgreementError("Peer fingerprint does not match the peer public key")
        public_key = bytes_to_base64(raw)

        now = now_millis()
        existing = self.load_peer(peer_id)
        created_at = existing.created_at if existing else now

        with self._db_lock:
            cursor = self.db.cursor()
            cursor.execute(
                "INSERT OR REPLACE INTO peers (peer_id, public_key, fingerprint, curve, created_at, last_activity) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (peer_id, public_key, fingerprint, self.config.curve, created_at, now)
            )
            self.db.commit()

        if existing and existing.fingerprint != fingerprint:
            logger.warning("Key of peer %s changed: %s -> %s", peer_id, existing.fingerprint, fingerprint)
        return PeerRecord(peer_id, public_key, fingerprint, self.config.curve, created_at, now)

    def load_peer(self, peer_id: str) -> Optional[PeerRecord]:
        with self._db_lock:
            cursor = self.db.cursor()
            cursor.execute(
                "SELECT peer_id, public_key, fingerprint, curve, created_at, last_activity "
                "FROM peers WHERE peer_id = ?",
                (peer_id,)
            )
            row = cursor.fetchone()
        return PeerRecord(*row) if row else None

    def touch_peer(self, peer_id: str):
        """Update the last activity time of a peer"""
        with self._db_lock:
            cursor = self.db.cursor()
            cursor.execute(
                "UPDATE peers SET last_activity = ? WHERE peer_id = ?",
                (now_millis(), peer_id)
            )
            self.db.commit()

    def list_peers(self) -> List[PeerRecord]:
        with self._db_lock:
            cursor = self.db.cursor()
            cursor.execute(
                "SELECT peer_id, public_key, fingerprint, curve, created_at, last_activity "
                "FROM peers ORDER BY last_activity DESC"
            )
            return [PeerRecord(*row) for row in cursor.fetchall()]

    def close(self):
        """Close database connection"""
        if self.db:
            self.db.close()
            self.db = None
