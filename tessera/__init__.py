"""
Tessera - compact, self-contained session tokens.

A token carries a visible segment (readable, signed) and an opaque segment
(encrypted, signed). Clients store it in a header or cookie and replay it on
each request; no server-side session storage is needed.
"""

__version__ = "0.3.0"

# Codec
from .codec import TokenCodec, encode, decode

# Capabilities
from .capabilities import (
    FieldExtractor,
    TokenBuilder,
    FunctionExtractor,
    FunctionBuilder,
    as_extractor,
    as_builder,
)

# Key management
from .keys import KeyStore, LazyKeyStore, load_or_generate

# Request binding
from .binding import (
    SessionAuthenticator,
    AuthOutcome,
    extract_transport_token,
    build_session_cookie,
    bearer_header,
)

# Reference token
from .users import User, Scope, UserExtractor, UserBuilder

# Errors
from .errors import (
    TesseraError,
    EncodeError,
    FieldTooLarge,
    DecodeError,
    TransportError,
    InvalidEncoding,
    Truncated,
    InvalidSignature,
    BadToken,
    BuildError,
    TrailingData,
    MalformedField,
    AuthRequestError,
    NoSession,
    InvalidHeaderFormat,
    UnsupportedAuthScheme,
    SessionRejected,
    KeyStoreError,
)


# Framework glue (lazy import to avoid requiring optional deps)
def __getattr__(name):
    """Lazy loading of integrations."""
    if name == "SessionDependency":
        from .integrations.fastapi import SessionDependency

        return SessionDependency
    raise AttributeError(f"module 'tessera' has no attribute '{name}'")


__all__ = [
    "__version__",
    # Codec
    "TokenCodec",
    "encode",
    "decode",
    # Capabilities
    "FieldExtractor",
    "TokenBuilder",
    "FunctionExtractor",
    "FunctionBuilder",
    "as_extractor",
    "as_builder",
    # Key management
    "KeyStore",
    "LazyKeyStore",
    "load_or_generate",
    # Request binding
    "SessionAuthenticator",
    "AuthOutcome",
    "extract_transport_token",
    "build_session_cookie",
    "bearer_header",
    # Reference token
    "User",
    "Scope",
    "UserExtractor",
    "UserBuilder",
    # Errors
    "TesseraError",
    "EncodeError",
    "FieldTooLarge",
    "DecodeError",
    "TransportError",
    "InvalidEncoding",
    "Truncated",
    "InvalidSignature",
    "BadToken",
    "BuildError",
    "TrailingData",
    "MalformedField",
    "AuthRequestError",
    "NoSession",
    "InvalidHeaderFormat",
    "UnsupportedAuthScheme",
    "SessionRejected",
    "KeyStoreError",
]
