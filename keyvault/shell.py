#!/usr/bin/env python3
"""
Interactive key vault shell.

Provides a command-line interface for:
- Creating and unlocking password-protected identities
- Exchanging public keys and fingerprints with peers
- Encrypting and decrypting session messages
- Running the crypto self-test
"""

import asyncio
import argparse
import logging
import sys
from typing import Callable, Dict, Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.patch_stdout import patch_stdout

from e2ee import (
    CryptoConfig,
    CryptoError,
    IdentityKeyPair,
    SecureSession,
    decrypt_session_message,
    encrypt_session_message,
    establish_secure_session,
    run_crypto_self_test,
)
from e2ee.constants import DEFAULT_CURVE
from keyvault.storage import KeyVault, VaultError

HELP_TEXT = """Commands:
  /new <id> - Create a new identity
  /unlock <id> - Unlock a stored identity
  /whoami - Show the unlocked identity
  /identities - List stored identities
  /export - Print the encrypted backup of the unlocked identity
  /passwd - Change the password of the unlocked identity
  /peer <id> <public key> <fingerprint> - Remember a peer
  /peers - List known peers
  /session <peer> - Establish a session with a peer
  /encrypt <peer> <message> - Encrypt a message for a peer
  /decrypt <peer> <payload json> - Decrypt a message from a peer
  /selftest - Run the crypto self-test
  /quit - Quit application"""


class VaultShell:
    """
    Slash-command shell over a KeyVault.
    """

    def __init__(self, vault: KeyVault, output: Callable[[str], None] = print):
        """
        Initialize the shell.

        Args:
            vault: Key vault to operate on
            output: Line printer
        """
        self.vault = vault
        self.out = output
        self.identity_id: Optional[str] = None
        self.identity: Optional[IdentityKeyPair] = None
        self.sessions: Dict[str, SecureSession] = {}
        self.prompt_session: Optional[PromptSession] = None
        self.running = False

    async def prompt_password(self, message: str = "Password: ") -> str:
        """Read a password without echo"""
        if self.prompt_session is None:
            self.prompt_session = PromptSession()
        return await self.prompt_session.prompt_async(message, is_password=True)

    def _require_identity(self) -> IdentityKeyPair:
        if self.identity is None:
            raise VaultError("No identity unlocked. Use /unlock <id> or /new <id>.")
        return self.identity

    async def handle_command(self, command: str):
        """Handle slash commands"""
        parts = command.split(maxsplit=1)
        cmd = parts[0].lower()
        arg = parts[1].strip() if len(parts) == 2 else ""

        try:
            if cmd == "/new" and arg:
                await self.create_identity(arg)
            elif cmd == "/unlock" and arg:
                await self.unlock_identity(arg)
            elif cmd == "/whoami":
                self.show_identity()
            elif cmd == "/identities":
                self.out("Identities:")
                for identity_id in self.vault.list_identities():
                    self.out(f"  - {identity_id}")
            elif cmd == "/export":
                self._require_identity()
                self.out(self.vault.export_backup(self.identity_id).to_json())
            elif cmd == "/passwd":
                await self.change_password()
            elif cmd == "/peer" and len(arg.split()) == 3:
                peer_id, public_key, fingerprint = arg.split()
                record = self.vault.save_peer(peer_id, public_key, fingerprint)
                self.sessions.pop(peer_id, None)
                self.out(f"Saved peer {record.peer_id} ({record.fingerprint})")
            elif cmd == "/peers":
                self.out("Peers:")
                for peer in self.vault.list_peers():
                    self.out(f"  - {peer.peer_id} {peer.fingerprint}")
            elif cmd == "/session" and arg:
                session = self.open_session(arg)
                self.out(f"Session {session.session_id}")
            elif cmd == "/encrypt" and len(arg.split(maxsplit=1)) == 2:
                peer_id, message = arg.split(maxsplit=1)
                self.out(self.encrypt_for(peer_id, message))
            elif cmd == "/decrypt" and len(arg.split(maxsplit=1)) == 2:
                peer_id, payload = arg.split(maxsplit=1)
                self.out(f"[{peer_id}] {self.decrypt_from(peer_id, payload)}")
            elif cmd == "/selftest":
                await self.self_test()
            elif cmd == "/quit":
                self.running = False
            elif cmd == "/help":
                self.out(HELP_TEXT)
            else:
                self.out("Unknown command. Type /help for help.")
        except (CryptoError, VaultError) as e:
            self.out(f"[Error: {e}]")

    async def create_identity(self, identity_id: str):
        password = await self.prompt_password("New password: ")
        confirm = await self.prompt_password("Repeat password: ")
        if password != confirm:
            self.out("Passwords do not match")
            return
        if not password:
            self.out("Password must not be empty")
            return

        # PBKDF2 runs off the event loop
        pair = await asyncio.to_thread(self.vault.create_identity, identity_id, password)
        self._set_identity(identity_id, pair)
        self.out(f"Created identity {identity_id}")
        self.show_identity()

    async def unlock_identity(self, identity_id: str):
        password = await self.prompt_password()
        pair = await asyncio.to_thread(self.vault.unlock_identity, identity_id, password)
        self._set_identity(identity_id, pair)
        self.out(f"Unlocked identity {identity_id} ({pair.fingerprint})")

    async def change_password(self):
        self._require_identity()
        old_password = await self.prompt_password("Current password: ")
        new_password = await self.prompt_password("New password: ")
        if not new_password:
            self.out("Password must not be empty")
            return
        await asyncio.to_thread(self.vault.change_password, self.identity_id, old_password, new_password)
        self.out("Password changed")

    def _set_identity(self, identity_id: str, pair: IdentityKeyPair):
        self.identity_id = identity_id
        self.identity = pair
        # Sessions belong to the previous identity
        self.sessions.clear()

    def show_identity(self):
        pair = self._require_identity()
        self.out(f"Identity:    {self.identity_id}")
        self.out(f"Fingerprint: {pair.fingerprint}")
        self.out(f"Public key:  {pair.public_key_base64}")

    def open_session(self, peer_id: str) -> SecureSession:
        """Get or establish the session with a known peer"""
        pair = self._require_identity()
        if peer_id in self.sessions:
            return self.sessions[peer_id]

        peer = self.vault.load_peer(peer_id)
        if peer is None:
            raise VaultError(f"Unknown peer '{peer_id}'. Use /peer first.")

        session = establish_secure_session(pair, peer.public_key, peer.fingerprint, self.vault.config)
        self.sessions[peer_id] = session
        self.vault.touch_peer(peer_id)
        return session

    def encrypt_for(self, peer_id: str, message: str) -> str:
        """Encrypt a message and return the payload JSON for the transport"""
        session = self.open_session(peer_id)
        payload = encrypt_session_message(session, self.identity_id, peer_id, message)
        return payload.to_json()

    def decrypt_from(self, peer_id: str, payload_json: str) -> str:
        session = self.open_session(peer_id)
        return decrypt_session_message(session, payload_json).plaintext

    async def self_test(self):
        report = await asyncio.to_thread(run_crypto_self_test, self.vault.config)
        for step in report.steps:
            mark = "✓" if step.success else "✗"
            self.out(f"{mark} {step.name}: {step.details}")
        self.out("All checks passed" if report.success else "Self-test FAILED")

    async def run_interactive(self):
        """Run the interactive prompt loop"""
        self.running = True
        self.prompt_session = PromptSession()
        self.out(HELP_TEXT)

        try:
            while self.running:
                try:
                    prompt_text = f"[{self.identity_id}] > " if self.identity_id else "> "
                    with patch_stdout():
                        user_input = await self.prompt_session.prompt_async(prompt_text)

                    if not user_input.strip():
                        continue
                    if user_input.startswith("/"):
                        await self.handle_command(user_input.strip())
                    else:
                        self.out("Commands start with '/'. Type /help for help.")

                except KeyboardInterrupt:
                    break
                except EOFError:
                    break
        finally:
            self.running = False
            self.vault.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chitchat-vault", description="E2EE key vault shell")
    parser.add_argument("--db", default="client_data/vault.db", help="Vault database path")
    parser.add_argument("--curve", default=DEFAULT_CURVE, help="Curve for new identities (P-256 or X25519)")
    parser.add_argument("--selftest", action="store_true", help="Run the crypto self-test and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def run_self_test(config: CryptoConfig) -> int:
    """Print the self-test report; returns the process exit code"""
    report = run_crypto_self_test(config)
    for step in report.steps:
        mark = "✓" if step.success else "✗"
        print(f"{mark} {step.name}: {step.details}")
    print("\n" + ("All checks passed" if report.success else "Self-test FAILED"))
    return 0 if report.success else 1


def main(argv=None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = CryptoConfig(curve=args.curve)
        config.validate()
    except CryptoError as e:
        print(f"Invalid configuration: {e}")
        return 2

    if args.selftest:
        return run_self_test(config)

    print("=" * 50)
    print("End-to-End Encrypted Chat Key Vault")
    print("=" * 50)
    print()

    shell = VaultShell(KeyVault(args.db, config))
    asyncio.run(shell.run_interactive())
    print("\nGoodbye!")
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted")
        sys.exit(0)
