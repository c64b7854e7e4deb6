"""
Shared pytest fixtures for Tessera tests.
"""

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from tessera import KeyStore, SessionAuthenticator, TokenCodec
from tessera.users import Scope, User, UserBuilder, UserExtractor

# Fixed test keypair so failures are reproducible.
TEST_SEED = bytes(range(32))


@pytest.fixture
def private_key() -> Ed25519PrivateKey:
    """Deterministic Ed25519 private key."""
    return Ed25519PrivateKey.from_private_bytes(TEST_SEED)


@pytest.fixture
def keys(private_key) -> KeyStore:
    """Issuing KeyStore built from the fixed test key."""
    return KeyStore.from_private_key(private_key)


@pytest.fixture
def other_keys() -> KeyStore:
    """An unrelated KeyStore (wrong-key scenarios)."""
    return KeyStore.generate()


@pytest.fixture
def cipher_secret() -> bytes:
    """Dedicated per-deployment cipher secret."""
    return b"tessera-test-deployment-secret!!"


@pytest.fixture
def codec(keys) -> TokenCodec:
    """Codec for the reference User token."""
    return TokenCodec(UserExtractor(), UserBuilder(), keys)


@pytest.fixture
def admin() -> User:
    return User(username="ada", scope=Scope.ADMIN)


@pytest.fixture
def authenticator(keys) -> SessionAuthenticator:
    """Authenticator reading the default session cookie."""
    return SessionAuthenticator(UserBuilder(), keys)
