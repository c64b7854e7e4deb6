"""
Tessera token codec.

Wire format (before base64url)::

    [u16 LE visible_len][u16 LE opaque_len][visible][opaque ciphertext][signature]

The opaque segment is encrypted first, then ``header || visible || ciphertext``
is signed with Ed25519. The signature length is implied by the scheme (64
bytes) and is not part of the header.

The signed bytes include the 4-byte length header. A signer covering only
``visible || ciphertext`` produces signatures this decoder rejects, so every
issuer and verifier of a deployment must use this module.

Decoding verifies the signature before anything inside the signed bytes is
interpreted or decrypted. Nothing here logs; every failure is raised as a
``DecodeError`` subclass for the caller to map.
"""

import base64
import binascii
import re
import struct
from typing import Any, Callable, Generic, Tuple, TypeVar, Union

from tessera.capabilities import FieldExtractor, TokenBuilder, as_builder, as_extractor
from tessera.crypto import MAX_SIGNATURE_SIZE
from tessera.errors import BadToken, BuildError, FieldTooLarge, InvalidEncoding, InvalidSignature, Truncated
from tessera.keys import KeyStore

T = TypeVar("T")

HEADER = struct.Struct("<HH")
HEADER_SIZE = HEADER.size
MAX_SEGMENT_LENGTH = 0xFFFF

_TRANSPORT_RE = re.compile(r"[A-Za-z0-9_-]*={0,2}")

ExtractorLike = Union[FieldExtractor[T], Callable[[T], Tuple[Any, Any]]]
BuilderLike = Union[TokenBuilder[T], Callable[[bytes, bytes], T]]


def encode(token: T, extractor: ExtractorLike, keys: KeyStore) -> str:
    """
    Encode ``token`` into a base64url transport string.

    Args:
        token: The application token.
        extractor: FieldExtractor (or callable) splitting the token into segments.
        keys: KeyStore holding the signing key.

    Returns:
        The padded base64url transport string.

    Raises:
        FieldTooLarge: If either segment exceeds 65535 bytes.
        KeyStoreError: If ``keys`` is verify-only.
    """
    visible, opaque = as_extractor(extractor).extract(token)
    if len(visible) > MAX_SEGMENT_LENGTH:
        raise FieldTooLarge("visible", len(visible))
    if len(opaque) > MAX_SEGMENT_LENGTH:
        raise FieldTooLarge("opaque", len(opaque))

    signer = keys.signer()
    header = HEADER.pack(len(visible), len(opaque))

    buf = bytearray()
    buf += header
    buf += visible
    buf += keys.cipher().apply_keystream(opaque, bytes(buf))
    signature = signer.sign(bytes(buf))
    if len(signature) > MAX_SIGNATURE_SIZE:
        raise ValueError(f"Signature of {len(signature)} bytes exceeds the reserved maximum")
    buf += signature

    return base64.urlsafe_b64encode(bytes(buf)).decode("ascii")


def decode(transport: str, builder: BuilderLike, keys: KeyStore) -> T:
    """
    Validate a transport string and rebuild the application token.

    Args:
        transport: The base64url transport string.
        builder: TokenBuilder (or callable) reconstructing the token.
        keys: KeyStore holding the public key and cipher key.

    Returns:
        The token produced by ``builder``.

    Raises:
        InvalidEncoding: Not strict, padded base64url.
        Truncated: Shorter than the header or the lengths it declares.
        InvalidSignature: Signature mismatch, or bytes beyond the signature.
        BadToken: The builder rejected the decrypted segments.
    """
    raw = _b64decode(transport)
    if len(raw) < HEADER_SIZE:
        raise Truncated()

    visible_len, opaque_len = HEADER.unpack_from(raw)
    signed_len = HEADER_SIZE + visible_len + opaque_len

    verifier = keys.verifier()
    expected_len = signed_len + verifier.signature_length
    if len(raw) < expected_len:
        raise Truncated()
    if len(raw) > expected_len:
        raise InvalidSignature()

    signed = raw[:signed_len]
    verifier.verify(signed, raw[signed_len:])

    visible_end = HEADER_SIZE + visible_len
    visible = signed[HEADER_SIZE:visible_end]
    opaque = keys.cipher().apply_keystream(signed[visible_end:], signed[:visible_end])

    try:
        return as_builder(builder).build(visible, opaque)
    except BuildError as e:
        raise BadToken(e) from e


def _b64decode(transport: str) -> bytes:
    if not isinstance(transport, str) or not _TRANSPORT_RE.fullmatch(transport):
        raise InvalidEncoding()
    try:
        raw = base64.b64decode(transport, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError):
        raise InvalidEncoding() from None
    # one spelling per token: unused trailing bits must be zero
    if base64.urlsafe_b64encode(raw).decode("ascii") != transport:
        raise InvalidEncoding()
    return raw


class TokenCodec(Generic[T]):
    """
    Binds an extractor, a builder and key material together.

    Example:
        >>> codec = TokenCodec(UserExtractor(), UserBuilder(), keys)
        >>> token = codec.encode(User("ada", Scope.ADMIN))
        >>> codec.decode(token)
        User(username='ada', scope=<Scope.ADMIN: 1>)
    """

    def __init__(self, extractor: ExtractorLike, builder: BuilderLike, keys: KeyStore):
        self.extractor = as_extractor(extractor)
        self.builder = as_builder(builder)
        self.keys = keys

    def encode(self, token: T) -> str:
        return encode(token, self.extractor, self.keys)

    def decode(self, transport: str) -> T:
        return decode(transport, self.builder, self.keys)
