"""
Test envelope encryption.
"""

import pytest

from chatly_engine.errors import EncryptionError
from chatly_engine.services.encryption.envelope import (
    Envelope,
    FernetEnvelopeEncryptor,
    RecipientKey,
    StaticKeyring,
    generate_key,
)


@pytest.fixture
def keys():
    return {"bob": generate_key(), "carol": generate_key()}


@pytest.fixture
def encryptor(keys):
    return FernetEnvelopeEncryptor(StaticKeyring(keys))


def test_each_recipient_can_open_envelope(encryptor, keys):
    envelope = encryptor.encrypt("meet at 6", ["bob", "carol"])

    assert b"meet at 6" not in envelope.ciphertext
    assert set(envelope.wrapped_keys) == {"bob", "carol"}
    for recipient_id, key in keys.items():
        assert encryptor.decrypt(envelope, RecipientKey(recipient_id, key)) == "meet at 6"


def test_envelope_survives_document_round_trip(encryptor, keys):
    envelope = encryptor.encrypt("unicode ✓ text", ["bob"])

    restored = Envelope.from_document(envelope.to_document())

    assert encryptor.decrypt(restored, RecipientKey("bob", keys["bob"])) == "unicode ✓ text"


def test_wrong_key_is_rejected(encryptor):
    envelope = encryptor.encrypt("secret", ["bob"])

    with pytest.raises(EncryptionError):
        encryptor.decrypt(envelope, RecipientKey("bob", generate_key()))


def test_non_recipient_is_rejected(encryptor, keys):
    envelope = encryptor.encrypt("secret", ["bob"])

    with pytest.raises(EncryptionError):
        encryptor.decrypt(envelope, RecipientKey("carol", keys["carol"]))


def test_unknown_recipient_fails_encryption(encryptor):
    with pytest.raises(EncryptionError):
        encryptor.encrypt("secret", ["mallory"])


def test_recipients_required(encryptor):
    with pytest.raises(EncryptionError):
        encryptor.encrypt("secret", [])


def test_invalid_keyring_key_rejected():
    with pytest.raises(EncryptionError):
        StaticKeyring({"bob": "not-a-fernet-key"})


def test_malformed_document_rejected():
    with pytest.raises(EncryptionError):
        Envelope.from_document({"algorithm": "fernet-envelope-v1"})
