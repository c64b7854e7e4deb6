"""
Tessera key material.

A ``KeyStore`` bundles the Ed25519 signing key (issuers only), its public key
and the derived opaque-segment cipher key. It is built once at process start
and passed to whatever signs or verifies tokens.
"""

import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Optional, Union

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from jwcrypto import jwk
from jwcrypto.common import base64url_decode

from tessera.crypto import Ed25519Signer, Ed25519Verifier, KeystreamCipher, derive_cipher_key
from tessera.errors import KeyStoreError

logger = logging.getLogger(__name__)

class KeyStore:
    """
    Immutable key material for issuing and verifying tokens.

    Example:
        >>> keys = KeyStore.generate()
        >>> verify_only = KeyStore.from_public_key_jwk(
        ...     keys.public_key_jwk(), cipher_secret=deployment_secret
        ... )
    """

    def __init__(
        self,
        public_key: Ed25519PublicKey,
        cipher_key: bytes,
        private_key: Optional[Ed25519PrivateKey] = None,
    ):
        """
        Prefer the ``generate`` / ``from_*`` constructors.

        Args:
            public_key: Ed25519 public key used for verification.
            cipher_key: 32-byte key for the opaque segment cipher.
            private_key: Ed25519 private key; omit for verify-only stores.
        """
        if private_key is not None and _public_bytes(private_key.public_key()) != _public_bytes(public_key):
            raise ValueError("Public key does not belong to the private key")
        self._private_key = private_key
        self._public_key = public_key
        self._signer = Ed25519Signer(private_key) if private_key is not None else None
        self._verifier = Ed25519Verifier(public_key)
        self._cipher = KeystreamCipher(cipher_key)

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def generate(cls, cipher_secret: Optional[bytes] = None) -> "KeyStore":
        """Generate a fresh Ed25519 keypair."""
        return cls.from_private_key(Ed25519PrivateKey.generate(), cipher_secret=cipher_secret)

    @classmethod
    def from_private_key(
        cls, private_key: Ed25519PrivateKey, cipher_secret: Optional[bytes] = None
    ) -> "KeyStore":
        """
        Build an issuing store.

        Without ``cipher_secret`` the cipher key is derived from the private key
        bytes, so only holders of the signing key can read opaque segments.
        """
        if not isinstance(private_key, Ed25519PrivateKey):
            raise ValueError("KeyStore requires an Ed25519 private key")
        material = cipher_secret if cipher_secret is not None else _private_bytes(private_key)
        return cls(private_key.public_key(), derive_cipher_key(material), private_key=private_key)

    @classmethod
    def from_public_key(cls, public_key: Ed25519PublicKey, cipher_secret: bytes) -> "KeyStore":
        """
        Build a verify-only store.

        Raises:
            ValueError: If ``cipher_secret`` is missing. A verifier cannot derive
                the cipher key from a public key.
        """
        if not isinstance(public_key, Ed25519PublicKey):
            raise ValueError("KeyStore requires an Ed25519 public key")
        if not cipher_secret:
            raise ValueError("A verify-only KeyStore requires 'cipher_secret'")
        return cls(public_key, derive_cipher_key(cipher_secret))

    @classmethod
    def from_private_key_pem(cls, data: bytes, cipher_secret: Optional[bytes] = None) -> "KeyStore":
        """Load an issuing store from a PKCS#8 PEM private key."""
        try:
            key = serialization.load_pem_private_key(data, password=None)
        except (ValueError, TypeError) as e:
            raise KeyStoreError(f"Invalid PEM private key: {e}")
        if not isinstance(key, Ed25519PrivateKey):
            raise KeyStoreError("Key must be an Ed25519 private key")
        return cls.from_private_key(key, cipher_secret=cipher_secret)

    @classmethod
    def from_public_key_jwk(cls, public_key_jwk: str, cipher_secret: bytes) -> "KeyStore":
        """Load a verify-only store from a public JWK (OKP, crv=Ed25519)."""
        try:
            key = jwk.JWK.from_json(public_key_jwk)
        except Exception as e:
            raise KeyStoreError(f"Invalid JWK public key: {e}")
        if key.get("kty") != "OKP" or key.get("crv") != "Ed25519":
            raise KeyStoreError("Key must be an Ed25519 key (OKP with crv=Ed25519)")
        public_key = Ed25519PublicKey.from_public_bytes(base64url_decode(key["x"]))
        return cls.from_public_key(public_key, cipher_secret)

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    @property
    def can_sign(self) -> bool:
        return self._signer is not None

    def signer(self) -> Ed25519Signer:
        if self._signer is None:
            raise KeyStoreError("This KeyStore is verify-only and cannot sign tokens")
        return self._signer

    def verifier(self) -> Ed25519Verifier:
        return self._verifier

    def cipher(self) -> KeystreamCipher:
        return self._cipher

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def private_key_pem(self) -> bytes:
        """PKCS#8 PEM of the signing key."""
        if self._private_key is None:
            raise KeyStoreError("This KeyStore holds no private key")
        return self._private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )

    def public_key_bytes(self) -> bytes:
        return _public_bytes(self._public_key)

    def public_key_jwk(self) -> str:
        """Public key as a JWK JSON string, for distribution to verifiers."""
        return jwk.JWK.from_pyca(self._public_key).export_public()

    def __repr__(self) -> str:
        role = "signing" if self.can_sign else "verify-only"
        return f"KeyStore({role}, public_key={self.public_key_bytes().hex()[:16]}...)"


def load_or_generate(path: Union[str, Path], cipher_secret: Optional[bytes] = None) -> KeyStore:
    """
    Load the signing key from ``path``, creating it on first use.

    The key file is a PKCS#8 PEM with owner-only permissions. It is written
    to a temporary file and hard-linked into place, so readers never see a
    partial key. When another process links its key first, that key is
    loaded instead.

    Raises:
        KeyStoreError: If the file exists but does not hold an Ed25519 key.
        OSError: If the file can be neither read nor created.
    """
    path = Path(path)
    keys = _read_key_file(path, cipher_secret)
    if keys is not None:
        return keys

    logger.info(f"Generating session key at {path}")
    keys = KeyStore.generate(cipher_secret=cipher_secret)
    # mkstemp creates the file with mode 0600
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(keys.private_key_pem())
        os.link(tmp, str(path))
    except FileExistsError:
        logger.info(f"Session key at {path} was created concurrently")
        existing = _read_key_file(path, cipher_secret)
        if existing is None:
            raise KeyStoreError(f"Key file {path} disappeared during creation")
        return existing
    finally:
        os.unlink(tmp)
    return keys


def _read_key_file(path: Path, cipher_secret: Optional[bytes]) -> Optional[KeyStore]:
    try:
        data = path.read_bytes()
    except FileNotFoundError:
        return None
    logger.info(f"Found session key at {path}")
    return KeyStore.from_private_key_pem(data, cipher_secret=cipher_secret)


class LazyKeyStore:
    """
    Loads or generates the process key material exactly once.

    The first caller of ``get()`` performs the file access; concurrent callers
    wait on the lock and then share the cached KeyStore.

    Example:
        >>> lazy = LazyKeyStore("session_key.pem")
        >>> keys = lazy.get()
    """

    def __init__(self, path: Union[str, Path], cipher_secret: Optional[bytes] = None):
        self._path = Path(path)
        self._cipher_secret = cipher_secret
        self._keys: Optional[KeyStore] = None
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._keys is not None

    def get(self) -> KeyStore:
        keys = self._keys
        if keys is not None:
            return keys
        with self._lock:
            if self._keys is None:
                self._keys = load_or_generate(self._path, cipher_secret=self._cipher_secret)
            return self._keys


def _private_bytes(key: Ed25519PrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )


def _public_bytes(key: Ed25519PublicKey) -> bytes:
    return key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
