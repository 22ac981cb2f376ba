"""
Agreement curves.

The identity layer never touches a concrete curve class directly; it asks
``get_curve`` for the configured one. Both curves produce 32-byte ECDH
secrets, so the HKDF and cipher layers are curve-independent.
"""

from typing import Dict, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey

from .constants import CURVE_P256, CURVE_X25519, SHARED_SECRET_SIZE
from .encoding import constant_time_compare
from .errors import AgreementError, ConfigError, DeserializationError, KeyImportError

PrivateKey = Union[ec.EllipticCurvePrivateKey, X25519PrivateKey]
PublicKey = Union[ec.EllipticCurvePublicKey, X25519PublicKey]


class Curve:
    """Interface of an agreement curve."""

    name: str = ""
    public_key_size: int = 0

    def generate_private_key(self) -> PrivateKey:
        raise NotImplementedError

    def public_bytes(self, public_key: PublicKey) -> bytes:
        raise NotImplementedError

    def load_public_bytes(self, data: bytes) -> PublicKey:
        raise NotImplementedError

    def owns_private_key(self, private_key) -> bool:
        raise NotImplementedError

    def owns_public_key(self, public_key) -> bool:
        raise NotImplementedError

    def _raw_exchange(self, private_key: PrivateKey, public_key: PublicKey) -> bytes:
        raise NotImplementedError

    def exchange(self, private_key: PrivateKey, public_key: PublicKey) -> bytes:
        """
        Perform Diffie-Hellman key exchange on this curve.

        Args:
            private_key: Our private key
            public_key: Their public key

        Returns:
            32-byte shared secret

        Raises:
            AgreementError: If the peer key is on another curve or invalid
        """
        if not self.owns_private_key(private_key):
            raise AgreementError(f"Private key is not a {self.name} key")
        if not self.owns_public_key(public_key):
            raise AgreementError(f"Peer public key is not a {self.name} key")

        try:
            shared = self._raw_exchange(private_key, public_key)
        except ValueError as e:
            raise AgreementError(f"Key agreement failed: {e}") from e

        if len(shared) != SHARED_SECRET_SIZE:
            raise AgreementError("Unexpected shared secret length")
        # Low-order peer points collapse the secret to zero
        if constant_time_compare(shared, bytes(SHARED_SECRET_SIZE)):
            raise AgreementError("Peer public key produced a degenerate shared secret")
        return shared

    def private_to_pem(self, private_key: PrivateKey) -> str:
        """Serialize a private key to unencrypted PKCS#8 PEM"""
        return private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption()
        ).decode("ascii")

    def private_from_pem(self, pem: str) -> PrivateKey:
        """
        Load a PKCS#8 PEM private key and check it belongs to this curve.

        Raises:
            DeserializationError: If the PEM is not text
            KeyImportError: If the key cannot be loaded or is on another curve
        """
        if isinstance(pem, str):
            pem = pem.encode("utf-8")
        if not isinstance(pem, bytes):
            raise DeserializationError("Private key must be a PEM string")

        try:
            private_key = serialization.load_pem_private_key(pem, password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise KeyImportError("Invalid private key") from e

        if not self.owns_private_key(private_key):
            raise KeyImportError(f"Private key is not a {self.name} key")
        return private_key


class P256Curve(Curve):
    """NIST P-256, raw public keys are uncompressed SEC1 points."""

    name = CURVE_P256
    public_key_size = 65

    def generate_private_key(self) -> ec.EllipticCurvePrivateKey:
        return ec.generate_private_key(ec.SECP256R1())

    def public_bytes(self, public_key: ec.EllipticCurvePublicKey) -> bytes:
        return public_key.public_bytes(
            encoding=serialization.Encoding.X962,
            format=serialization.PublicFormat.UncompressedPoint
        )

    def load_public_bytes(self, data: bytes) -> ec.EllipticCurvePublicKey:
        """
        Import a SEC1-encoded point.

        Raises:
            KeyImportError: If the point is not on the curve or is the identity
        """
        if not data or data[0] == 0x00:
            raise KeyImportError("Invalid P-256 point encoding")
        try:
            return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), data)
        except (ValueError, TypeError) as e:
            raise KeyImportError("Invalid P-256 point encoding") from e

    def owns_private_key(self, private_key) -> bool:
        return (
            isinstance(private_key, ec.EllipticCurvePrivateKey)
            and isinstance(private_key.curve, ec.SECP256R1)
        )

    def owns_public_key(self, public_key) -> bool:
        return (
            isinstance(public_key, ec.EllipticCurvePublicKey)
            and isinstance(public_key.curve, ec.SECP256R1)
        )

    def _raw_exchange(self, private_key, public_key) -> bytes:
        return private_key.exchange(ec.ECDH(), public_key)


class X25519Curve(Curve):
    """Curve25519, raw 32-byte public keys."""

    name = CURVE_X25519
    public_key_size = 32

    def generate_private_key(self) -> X25519PrivateKey:
        return X25519PrivateKey.generate()

    def public_bytes(self, public_key: X25519PublicKey) -> bytes:
        return public_key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw
        )

    def load_public_bytes(self, data: bytes) -> X25519PublicKey:
        """
        Import a raw X25519 public key.

        Raises:
            KeyImportError: If the encoding has the wrong length or is all-zero
        """
        if len(data) != self.public_key_size:
            raise KeyImportError("Invalid X25519 public key length")
        if constant_time_compare(data, bytes(self.public_key_size)):
            raise KeyImportError("X25519 public key is the identity element")
        try:
            return X25519PublicKey.from_public_bytes(data)
        except ValueError as e:
            raise KeyImportError("Invalid X25519 public key") from e

    def owns_private_key(self, private_key) -> bool:
        return isinstance(private_key, X25519PrivateKey)

    def owns_public_key(self, public_key) -> bool:
        return isinstance(public_key, X25519PublicKey)

    def _raw_exchange(self, private_key, public_key) -> bytes:
        return private_key.exchange(public_key)


_CURVES: Dict[str, Curve] = {
    CURVE_P256: P256Curve(),
    CURVE_X25519: X25519Curve(),
}


def get_curve(name: str) -> Curve:
    """
    Look up a curve by name.

    Raises:
        ConfigError: If the curve is not supported
    """
    try:
        return _CURVES[name]
    except KeyError:
        raise ConfigError(f"Unsupported curve: {name}") from None


def curve_for_public_key(public_key) -> Curve:
    """Find the curve a public key handle belongs to"""
    for curve in _CURVES.values():
        if curve.owns_public_key(public_key):
            return curve
    raise AgreementError("Public key is not on a supported curve")
