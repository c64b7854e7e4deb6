"""
Tessera crypto primitives.

Thin adapters over ``cryptography``:

- Ed25519 signing and verification of the token body.
- A ChaCha20 keystream for the opaque segment. Applying it twice with the
  same key and context restores the input, so encryption and decryption are
  the same call.
"""

from cryptography.exceptions import InvalidSignature as _CryptoInvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from tessera.errors import InvalidSignature

# Ed25519 signatures are always 64 bytes.
SIGNATURE_LENGTH = 64

# Upper bound reserved when sizing token buffers.
MAX_SIGNATURE_SIZE = 105

CIPHER_KEY_LENGTH = 32
NONCE_LENGTH = 12

_KEY_INFO = b"tessera/v1/opaque-cipher-key"
_NONCE_INFO = b"tessera/v1/opaque-cipher-nonce:"


def derive_cipher_key(secret: bytes) -> bytes:
    """
    Derive the 32-byte opaque-segment cipher key from deployment key material.

    Args:
        secret: Raw private key bytes or a dedicated per-deployment secret.

    Raises:
        ValueError: If ``secret`` is empty.
    """
    if not secret:
        raise ValueError("Cipher key derivation requires non-empty key material")
    hkdf = HKDF(algorithm=hashes.SHA256(), length=CIPHER_KEY_LENGTH, salt=None, info=_KEY_INFO)
    return hkdf.derive(secret)


class Ed25519Signer:
    """Signs token bodies with an Ed25519 private key."""

    signature_length = SIGNATURE_LENGTH

    def __init__(self, private_key: Ed25519PrivateKey):
        if not isinstance(private_key, Ed25519PrivateKey):
            raise ValueError("Ed25519Signer requires an Ed25519PrivateKey")
        self._key = private_key

    def sign(self, message: bytes) -> bytes:
        return self._key.sign(bytes(message))


class Ed25519Verifier:
    """Verifies token signatures against an Ed25519 public key."""

    signature_length = SIGNATURE_LENGTH

    def __init__(self, public_key: Ed25519PublicKey):
        if not isinstance(public_key, Ed25519PublicKey):
            raise ValueError("Ed25519Verifier requires an Ed25519PublicKey")
        self._key = public_key

    def verify(self, message: bytes, signature: bytes) -> None:
        """
        Verify ``signature`` over ``message``.

        Raises:
            InvalidSignature: On any mismatch, including a wrong signature length.
        """
        if len(signature) != self.signature_length:
            raise InvalidSignature()
        try:
            self._key.verify(bytes(signature), bytes(message))
        except _CryptoInvalidSignature:
            raise InvalidSignature() from None


class KeystreamCipher:
    """
    ChaCha20 keystream bound to a derived key.

    Each call derives a 96-bit nonce from the key and a caller-supplied
    context, so tokens with different contexts never share a keystream. The
    32-bit block counter starts at zero; a 65535-byte segment needs at most
    1024 blocks.
    """

    def __init__(self, key: bytes):
        if len(key) != CIPHER_KEY_LENGTH:
            raise ValueError(f"Cipher key must be {CIPHER_KEY_LENGTH} bytes")
        self._key = bytes(key)

    def _nonce(self, context: bytes) -> bytes:
        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=NONCE_LENGTH,
            salt=None,
            info=_NONCE_INFO + bytes(context),
        )
        return hkdf.derive(self._key)

    def apply_keystream(self, data: bytes, context: bytes = b"") -> bytes:
        """XOR ``data`` with the keystream for ``context``. Self-inverse."""
        if not data:
            return b""
        # cryptography takes a 16-byte nonce: little-endian counter || nonce
        full_nonce = b"\x00" * 4 + self._nonce(context)
        encryptor = Cipher(algorithms.ChaCha20(self._key, full_nonce), mode=None).encryptor()
        return encryptor.update(bytes(data)) + encryptor.finalize()
