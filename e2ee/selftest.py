"""
Crypto self-test.

Runs generate -> exchange -> derive -> encrypt -> decrypt end to end and
reports pass/fail per step. Never raises; an unexpected exception becomes
a failed step.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .agreement import derive_session_key, derive_shared_secret
from .cipher import decrypt_message, encrypt_message
from .config import CryptoConfig, resolve_config
from .encoding import constant_time_compare
from .identity import (
    create_key_backup,
    export_key_pair,
    generate_identity_key_pair,
    import_key_pair,
    restore_key_from_backup,
)
from .session import decrypt_session_message, encrypt_session_message, establish_secure_session

logger = logging.getLogger(__name__)

SELF_TEST_MESSAGE = "Hello, this is a secret message! \U0001F510"
SESSION_TEST_MESSAGE = "Secret session message!"
SELF_TEST_PASSWORD = "self-test-password"


@dataclass
class SelfTestStep:
    name: str
    success: bool
    details: str = ""


@dataclass
class SelfTestReport:
    success: bool = True
    steps: List[SelfTestStep] = field(default_factory=list)

    def add(self, name: str, success: bool, details: str = "") -> bool:
        self.steps.append(SelfTestStep(name=name, success=success, details=details))
        if not success:
            self.success = False
        return success


def run_crypto_self_test(config: Optional[CryptoConfig] = None, include_backup: bool = True) -> SelfTestReport:
    """
    Run the full crypto round trip.

    Args:
        config: Crypto configuration to test
        include_backup: Also run the (slow) password backup round trip

    Returns:
        SelfTestReport with one entry per step
    """
    report = SelfTestReport()

    try:
        config = resolve_config(config)

        alice = generate_identity_key_pair(config)
        report.add("Generate Alice's identity", True, f"Public key fingerprint: {alice.fingerprint}")

        bob = generate_identity_key_pair(config)
        report.add("Generate Bob's identity", True, f"Public key fingerprint: {bob.fingerprint}")

        alice_exported = export_key_pair(alice)
        alice_imported = import_key_pair(alice_exported)
        report.add(
            "Key serialization round-trip",
            alice_imported.fingerprint == alice.fingerprint,
            "Keys can be exported and imported correctly",
        )

        alice_shared = derive_shared_secret(alice.private_key, bob.public_key)
        bob_shared = derive_shared_secret(bob.private_key, alice.public_key)
        shared_match = constant_time_compare(alice_shared, bob_shared)
        report.add(
            "ECDH Key Exchange",
            shared_match,
            "Both parties derived identical shared secret" if shared_match else "Shared secrets do not match!",
        )

        session_key = derive_session_key(alice_shared, None, config.hkdf_info)
        report.add("HKDF Session Key Derivation", len(session_key) == 32, "AES-256-GCM key derived successfully")

        encrypted = encrypt_message(session_key, SELF_TEST_MESSAGE)
        report.add(
            "AES-256-GCM Encryption",
            len(encrypted.ciphertext) > 0,
            f"Ciphertext length: {len(encrypted.ciphertext)} chars",
        )

        decrypted = decrypt_message(session_key, encrypted)
        decrypt_ok = decrypted.plaintext == SELF_TEST_MESSAGE
        report.add(
            "AES-256-GCM Decryption",
            decrypt_ok,
            "Message decrypted correctly" if decrypt_ok else "Decryption failed!",
        )

        if include_backup:
            backup = create_key_backup(alice, SELF_TEST_PASSWORD, config)
            restored = restore_key_from_backup(backup, SELF_TEST_PASSWORD, config)
            report.add(
                "Password Backup Round-trip",
                restored.fingerprint == alice.fingerprint,
                "Private key restored from password-protected backup",
            )

        alice_session = establish_secure_session(alice, bob.public_key_base64, bob.fingerprint, config)
        bob_session = establish_secure_session(bob, alice.public_key_base64, alice.fingerprint, config)
        payload = encrypt_session_message(alice_session, "alice", "bob", SESSION_TEST_MESSAGE)
        received = decrypt_session_message(bob_session, payload)
        session_ok = (
            received.plaintext == SESSION_TEST_MESSAGE
            and received.timestamp == payload.encrypted.timestamp
        )
        report.add(
            "Full E2EE Session Test",
            session_ok,
            "Alice successfully sent encrypted message to Bob" if session_ok else "Session message mismatch!",
        )

    except Exception as e:
        logger.exception("Crypto self-test aborted")
        report.add("Unexpected Error", False, f"{type(e).__name__}: {e}")

    logger.info("Crypto self-test %s", "passed" if report.success else "FAILED")
    return report
