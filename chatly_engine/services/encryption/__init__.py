from .envelope import Envelope, FernetEnvelopeEncryptor, RecipientKey, StaticKeyring, generate_key

__all__ = ["Envelope", "FernetEnvelopeEncryptor", "RecipientKey", "StaticKeyring", "generate_key"]
