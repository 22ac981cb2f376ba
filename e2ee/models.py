"""
Pydantic models for records that leave the crypto core.

These are the only structures handed to the transport or the storage
collaborator. Every field is text or an integer so the records can be
stored in any text-capable store. JSON field names use camelCase to stay
compatible with existing web clients.
"""

import json
from typing import Any, Dict, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .constants import DEFAULT_CURVE, PBKDF2_ITERATIONS
from .errors import DeserializationError

RecordT = TypeVar("RecordT", bound="WireRecord")


class WireRecord(BaseModel):
    """Base class with camelCase JSON helpers"""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return self.model_dump(by_alias=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_dict(cls: Type[RecordT], data: Union[Dict[str, Any], str, bytes]) -> RecordT:
        """
        Create from a dictionary or a JSON document.

        Raises:
            DeserializationError: If the input is not a valid record
        """
        try:
            if isinstance(data, (str, bytes)):
                data = json.loads(data)
            return cls.model_validate(data)
        except (ValidationError, ValueError, TypeError) as e:
            raise DeserializationError(f"Malformed {cls.__name__}: {e}") from e


class EncryptedMessage(WireRecord):
    """
    An encrypted message as carried by the transport.

    Attributes:
        ciphertext: base64(nonce || ciphertext || tag)
        timestamp: Encryption time in integer milliseconds
    """
    ciphertext: str
    timestamp: int


class ExportedKeyPair(WireRecord):
    """
    Portable identity key pair for device migration.

    The private key is NOT protected; callers must never transmit or store
    this record in the clear. Use EncryptedKeyBackup for that.
    """
    public_key: str = Field(alias="publicKey")  # base64 raw encoding
    private_key: str = Field(alias="privateKey")  # PKCS#8 PEM
    fingerprint: str
    curve: str = DEFAULT_CURVE


class EncryptedKeyBackup(WireRecord):
    """Password-protected backup of an identity private key"""
    ciphertext: str = Field(alias="encryptedPrivateKey")  # base64
    salt: str  # base64
    nonce: str = Field(alias="iv")  # base64
    public_key: str = Field(alias="publicKey")  # base64
    fingerprint: str
    curve: str = DEFAULT_CURVE
    iterations: int = PBKDF2_ITERATIONS  # PBKDF2 rounds used for this backup


class SecureMessagePayload(WireRecord):
    """Session message with the metadata bound as associated data"""
    session_id: str = Field(alias="sessionId")
    sender_id: str = Field(alias="senderId")
    recipient_id: str = Field(alias="recipientId")
    encrypted: EncryptedMessage
