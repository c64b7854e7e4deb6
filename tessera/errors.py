"""
Tessera exception hierarchy.

Every failure the codec or the request binding can produce is a subclass of
``TesseraError`` and carries a stable ``code`` plus the HTTP-equivalent
``status_code`` a web layer should answer with.

    TesseraError
    ├── EncodeError
    │   └── FieldTooLarge
    ├── DecodeError
    │   ├── TransportError
    │   │   ├── InvalidEncoding
    │   │   └── Truncated
    │   ├── InvalidSignature
    │   └── BadToken
    ├── BuildError
    │   ├── TrailingData
    │   └── MalformedField
    ├── AuthRequestError
    │   ├── NoSession
    │   ├── InvalidHeaderFormat
    │   ├── UnsupportedAuthScheme
    │   └── SessionRejected
    └── KeyStoreError
"""

from typing import Optional


class TesseraError(Exception):
    """Base class for all Tessera errors."""

    code = "tessera_error"
    status_code = 500
    default_message = "tessera error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)


# =============================================================================
# Encoding
# =============================================================================


class EncodeError(TesseraError):
    """A token could not be encoded. Always a programming error in the caller."""

    code = "encode_error"


class FieldTooLarge(EncodeError):
    """A visible or opaque segment does not fit the 16-bit length header."""

    code = "field_too_large"

    def __init__(self, segment: str, length: int):
        self.segment = segment
        self.length = length
        super().__init__(f"{segment} segment is {length} bytes, the limit is 65535")


# =============================================================================
# Decoding
# =============================================================================


class DecodeError(TesseraError):
    """A transport string was rejected."""

    code = "decode_error"
    status_code = 400


class TransportError(DecodeError):
    """The transport string is not a well-formed wire token."""

    code = "transport_error"


class InvalidEncoding(TransportError):
    code = "invalid_encoding"
    default_message = "token is not valid base64url"


class Truncated(TransportError):
    code = "truncated"
    default_message = "token is shorter than its header declares"


class InvalidSignature(DecodeError):
    """Signature verification failed. Deliberately carries no detail."""

    code = "invalid_signature"
    status_code = 401
    default_message = "the token signature is invalid"


class BadToken(DecodeError):
    """The signature is valid but the payload does not match the token schema."""

    code = "bad_token"

    def __init__(self, cause: "BuildError"):
        self.cause = cause
        super().__init__(f"token payload rejected: {cause}")


# =============================================================================
# Token building (raised by TokenBuilder implementations)
# =============================================================================


class BuildError(TesseraError):
    """A TokenBuilder could not reconstruct a token from decoded segments."""

    code = "build_error"
    status_code = 400


class TrailingData(BuildError):
    code = "trailing_data"
    default_message = "opaque segment has unconsumed trailing bytes"


class MalformedField(BuildError):
    code = "malformed_field"
    default_message = "a token field is malformed"


# =============================================================================
# Request binding
# =============================================================================


class AuthRequestError(TesseraError):
    """A request could not be bound to a session."""

    code = "auth_request_error"
    status_code = 400


class NoSession(AuthRequestError):
    code = "no_session"
    status_code = 401
    default_message = "no 'Authorization' header or session cookie was included in the request"


class InvalidHeaderFormat(AuthRequestError):
    code = "invalid_header_format"
    default_message = "the 'Authorization' header value is malformed"


class UnsupportedAuthScheme(AuthRequestError):
    code = "unsupported_auth_scheme"
    default_message = "the only supported authorization scheme is 'Bearer'"


class SessionRejected(AuthRequestError):
    """Wraps a DecodeError; the status follows the wrapped error."""

    code = "session_rejected"

    def __init__(self, cause: DecodeError):
        self.cause = cause
        self.code = cause.code
        self.status_code = cause.status_code
        super().__init__(str(cause))


# =============================================================================
# Key material
# =============================================================================


class KeyStoreError(TesseraError):
    """Key material is missing or unusable for the requested role."""

    code = "key_store_error"
