"""
Envelope encryption for messages in encrypted chats.
Uses Fernet symmetric encryption: each message gets a fresh data key, and the
data key is wrapped once per recipient with that recipient's Fernet key.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from cryptography.fernet import Fernet, InvalidToken

from chatly_engine.errors import EncryptionError
from chatly_engine.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

ALGORITHM = "fernet-envelope-v1"


@dataclass(slots=True)
class Envelope:
    ciphertext: bytes
    wrapped_keys: dict[str, bytes] = field(default_factory=dict)
    algorithm: str = ALGORITHM

    def to_document(self) -> dict[str, Any]:
        # Fernet tokens are already URL-safe base64.
        return {
            "algorithm": self.algorithm,
            "ciphertext": self.ciphertext.decode("ascii"),
            "wrapped_keys": {rid: key.decode("ascii") for rid, key in self.wrapped_keys.items()},
        }

    @classmethod
    def from_document(cls, data: Mapping[str, Any]) -> "Envelope":
        try:
            return cls(
                ciphertext=data["ciphertext"].encode("ascii"),
                wrapped_keys={
                    rid: key.encode("ascii") for rid, key in data["wrapped_keys"].items()
                },
                algorithm=data.get("algorithm", ALGORITHM),
            )
        except (KeyError, AttributeError, UnicodeEncodeError) as e:
            raise EncryptionError(f"Malformed envelope document: {e}") from e


@dataclass(slots=True, frozen=True)
class RecipientKey:
    recipient_id: str
    key: bytes


class Keyring(Protocol):
    def key_for(self, recipient_id: str) -> bytes:
        """Fernet key for a recipient; raises KeyError when unknown."""
        ...


class EnvelopeEncryptor(Protocol):
    def encrypt(self, plaintext: str, recipients: Sequence[str]) -> Envelope:
        ...

    def decrypt(self, envelope: Envelope, recipient_key: RecipientKey) -> str:
        ...


class StaticKeyring:
    """In-memory keyring, e.g. loaded from a secrets manager at startup."""

    def __init__(self, keys: Mapping[str, str | bytes] | None = None):
        self._keys: dict[str, bytes] = {}
        for recipient_id, key in (keys or {}).items():
            self.add(recipient_id, key)

    def add(self, recipient_id: str, key: str | bytes) -> None:
        key_bytes = key.encode("utf-8") if isinstance(key, str) else key
        try:
            Fernet(key_bytes)
        except (ValueError, TypeError) as e:
            raise EncryptionError(f"Invalid key for recipient {recipient_id}") from e
        self._keys[recipient_id] = key_bytes

    def key_for(self, recipient_id: str) -> bytes:
        return self._keys[recipient_id]


def generate_key() -> bytes:
    """
    Generate a new Fernet key.

    Note:
        Use this when provisioning a recipient or rotating their key.
    """
    return Fernet.generate_key()


class FernetEnvelopeEncryptor:
    def __init__(self, keyring: Keyring):
        self._keyring = keyring

    def encrypt(self, plaintext: str, recipients: Sequence[str]) -> Envelope:
        """
        Encrypt `plaintext` so that each recipient can open it with their key.

        Raises:
            EncryptionError: no recipients, unknown recipient, or cipher failure
        """
        if not recipients:
            raise EncryptionError("At least one recipient is required")

        try:
            data_key = Fernet.generate_key()
            ciphertext = Fernet(data_key).encrypt(plaintext.encode("utf-8"))
            wrapped = {
                recipient_id: Fernet(self._keyring.key_for(recipient_id)).encrypt(data_key)
                for recipient_id in dict.fromkeys(recipients)
            }
        except KeyError as e:
            logger.error("No key registered for recipient", recipient_id=str(e))
            raise EncryptionError(f"No key registered for recipient {e}") from e
        except Exception as e:
            logger.error("Failed to encrypt message", error=str(e))
            raise EncryptionError(f"Encryption failed: {e}") from e

        logger.debug("Message encrypted", recipients=len(wrapped))
        return Envelope(ciphertext=ciphertext, wrapped_keys=wrapped)

    def decrypt(self, envelope: Envelope, recipient_key: RecipientKey) -> str:
        """
        Open an envelope with one recipient's key.

        Raises:
            EncryptionError: recipient not addressed, wrong key, or corrupted data
        """
        if envelope.algorithm != ALGORITHM:
            raise EncryptionError(f"Unsupported envelope algorithm: {envelope.algorithm}")

        wrapped = envelope.wrapped_keys.get(recipient_key.recipient_id)
        if wrapped is None:
            raise EncryptionError("Envelope is not addressed to this recipient")

        try:
            data_key = Fernet(recipient_key.key).decrypt(wrapped)
            return Fernet(data_key).decrypt(envelope.ciphertext).decode("utf-8")
        except InvalidToken as e:
            logger.error("Envelope decryption failed - invalid token")
            raise EncryptionError("Invalid key or corrupted envelope") from e
        except (ValueError, TypeError) as e:
            logger.error("Failed to decrypt envelope", error=str(e))
            raise EncryptionError(f"Decryption failed: {e}") from e
