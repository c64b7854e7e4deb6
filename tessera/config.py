# tessera/config.py
"""
Centralized configuration for Tessera.

All configurable values are read from environment variables with sensible defaults.
This allows different deployments (dev, staging, production) to use different
key files and cookie policy without code changes.

Usage:
    from tessera.config import KEY_FILE, SESSION_COOKIE_NAME

Environment Variables:
    TESSERA_KEY_FILE: PEM file holding the Ed25519 signing key (default: session_key.pem)
    TESSERA_CIPHER_SECRET: Optional base64url secret for the opaque-segment cipher.
        When unset, the cipher key is derived from the signing key.
    TESSERA_SESSION_COOKIE: Name of the session cookie (default: tessera-session)
    TESSERA_COOKIE_MAX_AGE_DAYS: Session cookie lifetime in days (default: 30)
"""

import base64
import binascii
import os
from typing import Final, Optional

# =============================================================================
# Key Material
# =============================================================================

# Signing key file. Generated on first use if absent.
KEY_FILE: Final[str] = os.getenv("TESSERA_KEY_FILE", "session_key.pem")

# Dedicated per-deployment secret for the opaque segment cipher.
# Required by verify-only services that do not hold the signing key.
CIPHER_SECRET: Final[Optional[str]] = os.getenv("TESSERA_CIPHER_SECRET") or None

# =============================================================================
# Request Binding
# =============================================================================

SESSION_COOKIE_NAME: Final[str] = os.getenv("TESSERA_SESSION_COOKIE", "tessera-session")

COOKIE_MAX_AGE_DAYS: Final[int] = int(os.getenv("TESSERA_COOKIE_MAX_AGE_DAYS", "30"))

AUTH_HEADER_NAME: Final[str] = "Authorization"
AUTH_HEADER_SCHEME: Final[str] = "Bearer"

# =============================================================================
# Helper Functions
# =============================================================================


def decode_secret(value: str) -> bytes:
    """
    Decode a base64url secret string (padding optional).

    Raises:
        ValueError: If the value is not base64url or decodes to fewer than 16 bytes.
    """
    padded = value.strip() + "=" * (-len(value.strip()) % 4)
    try:
        secret = base64.urlsafe_b64decode(padded.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError) as e:
        raise ValueError(f"Cipher secret is not valid base64url: {e}")
    if len(secret) < 16:
        raise ValueError("Cipher secret must decode to at least 16 bytes")
    return secret


def get_cipher_secret() -> Optional[bytes]:
    """Return the configured cipher secret as bytes, or None when unset."""
    if CIPHER_SECRET is None:
        return None
    return decode_secret(CIPHER_SECRET)


# =============================================================================
# Configuration Summary (for debugging)
# =============================================================================


def print_config() -> None:
    """Print current configuration (useful for debugging). Never prints secrets."""
    print("Tessera Configuration:")
    print(f"  KEY_FILE:            {KEY_FILE}")
    print(f"  CIPHER_SECRET:       {'set' if CIPHER_SECRET else 'derived from signing key'}")
    print(f"  SESSION_COOKIE_NAME: {SESSION_COOKIE_NAME}")
    print(f"  COOKIE_MAX_AGE_DAYS: {COOKIE_MAX_AGE_DAYS}")


if __name__ == "__main__":
    print_config()
