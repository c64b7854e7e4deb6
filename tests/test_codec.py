"""
Unit tests for the token codec.
"""

import base64
import struct

import pytest

from tessera import (
    BadToken,
    DecodeError,
    FieldTooLarge,
    InvalidEncoding,
    InvalidSignature,
    KeyStore,
    KeyStoreError,
    MalformedField,
    TokenCodec,
    TransportError,
    Truncated,
    decode,
    encode,
)
from tessera.codec import HEADER_SIZE
from tessera.crypto import SIGNATURE_LENGTH
from tessera.users import Scope, User, UserBuilder, UserExtractor


def _raw(token: str) -> bytes:
    return base64.urlsafe_b64decode(token)


def _pack(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii")


class TestRoundTrip:
    """decode(encode(t)) returns an equal token."""

    def test_admin_round_trip(self, codec, admin):
        """The worked example survives a round trip."""
        assert codec.decode(codec.encode(admin)) == User("ada", Scope.ADMIN)

    def test_empty_username(self, codec):
        """An empty username round-trips with visible_len = 0."""
        user = User(username="", scope=Scope.EMPTY)
        token = codec.encode(user)

        visible_len, opaque_len = struct.unpack_from("<HH", _raw(token))
        assert visible_len == 0
        assert opaque_len == 2
        assert codec.decode(token) == user

    def test_unicode_username(self, codec):
        """Multi-byte usernames round-trip."""
        user = User(username="Zoë 世界", scope=Scope.ADMIN)
        assert codec.decode(codec.encode(user)) == user

    def test_module_functions(self, keys, admin):
        """encode/decode accept capability objects directly."""
        token = encode(admin, UserExtractor(), keys)
        assert decode(token, UserBuilder(), keys) == admin

    def test_callable_capabilities(self, keys):
        """Plain functions work as extractor and builder."""
        token = encode("hello", lambda s: (s.encode(), b"\x07"), keys)
        result = decode(token, lambda v, o: (v.decode(), o), keys)
        assert result == ("hello", b"\x07")

    def test_empty_segments(self, keys):
        """Both segments may be empty."""
        token = encode(None, lambda _: (b"", b""), keys)
        assert decode(token, lambda v, o: (v, o), keys) == (b"", b"")
        assert len(_raw(token)) == HEADER_SIZE + SIGNATURE_LENGTH


class TestWireFormat:
    """Layout of the decoded transport string."""

    def test_layout(self, codec, admin):
        """header || visible || ciphertext || signature."""
        raw = _raw(codec.encode(admin))

        assert raw[:4] == struct.pack("<HH", 3, 2)
        assert raw[4:7] == b"ada"
        assert len(raw) == 4 + 3 + 2 + SIGNATURE_LENGTH

    def test_opaque_segment_is_encrypted(self, keys):
        """The opaque bytes never appear in clear."""
        opaque = b"secret-scope-data"
        raw = _raw(encode(None, lambda _: (b"visible", opaque), keys))
        assert opaque not in raw
        assert raw[4:11] == b"visible"

    def test_transport_alphabet(self, codec):
        """Transport strings use the URL-safe alphabet with padding."""
        token = codec.encode(User("a" * 100, Scope.ADMIN))
        assert "+" not in token and "/" not in token
        assert len(token) % 4 == 0

    def test_deterministic(self, codec, admin):
        """Ed25519 is deterministic, so equal tokens encode identically."""
        assert codec.encode(admin) == codec.encode(admin)


class TestLengthBounds:
    """16-bit header limits."""

    def test_visible_at_limit(self, keys):
        """A 65535-byte visible segment encodes."""
        token = encode(None, lambda _: (b"v" * 65535, b""), keys)
        visible, _ = decode(token, lambda v, o: (v, o), keys)
        assert len(visible) == 65535

    def test_opaque_at_limit(self, keys):
        """A 65535-byte opaque segment encodes."""
        token = encode(None, lambda _: (b"", b"o" * 65535), keys)
        _, opaque = decode(token, lambda v, o: (v, o), keys)
        assert opaque == b"o" * 65535

    def test_visible_over_limit(self, keys):
        """65536 visible bytes fail with a capacity error."""
        with pytest.raises(FieldTooLarge) as exc:
            encode(None, lambda _: (b"v" * 65536, b""), keys)
        assert exc.value.segment == "visible"
        assert exc.value.length == 65536

    def test_opaque_over_limit(self, keys):
        """65536 opaque bytes fail with a capacity error."""
        with pytest.raises(FieldTooLarge) as exc:
            encode(None, lambda _: (b"", b"o" * 65536), keys)
        assert exc.value.segment == "opaque"


class TestTransportErrors:
    """Malformed transport strings."""

    @pytest.mark.parametrize("value", ["not base64!", "abc+def/", "AAAA====", "AAA", "AA AA", "AAAA\n"])
    def test_invalid_encoding(self, codec, value):
        """Non-base64url input is rejected."""
        with pytest.raises(InvalidEncoding):
            codec.decode(value)

    def test_non_canonical_trailing_bits(self, codec, admin):
        """Setting the unused bits of the last character gives a different string, rejected."""
        alphabet = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"
        token = codec.encode(admin)
        data = token.rstrip("=")
        assert len(token) - len(data) == 2

        last = alphabet[alphabet.index(data[-1]) ^ 1]
        respelled = data[:-1] + last + token[len(data):]
        assert respelled != token
        assert base64.urlsafe_b64decode(respelled) == base64.urlsafe_b64decode(token)

        with pytest.raises(InvalidEncoding):
            codec.decode(respelled)

    def test_non_string(self, codec):
        """Bytes are not a transport string."""
        with pytest.raises(InvalidEncoding):
            codec.decode(b"AAAA")

    def test_empty(self, codec):
        """An empty string is truncated."""
        with pytest.raises(Truncated):
            codec.decode("")

    def test_shorter_than_header(self, codec):
        """Fewer than four bytes cannot hold a header."""
        with pytest.raises(Truncated):
            codec.decode(_pack(b"\x01\x00"))

    def test_header_claims_more_than_present(self, codec):
        """A header declaring more bytes than present is truncated."""
        raw = struct.pack("<HH", 1000, 1000) + b"\x00" * 80
        with pytest.raises(Truncated):
            codec.decode(_pack(raw))

    def test_every_prefix_rejected(self, codec, admin):
        """Every proper prefix fails with a transport error."""
        token = codec.encode(admin)
        for cut in range(len(token)):
            with pytest.raises(TransportError):
                codec.decode(token[:cut])

    def test_every_byte_prefix_rejected(self, codec, admin):
        """Every proper prefix of the wire bytes is truncated."""
        raw = _raw(codec.encode(admin))
        for cut in range(len(raw)):
            with pytest.raises(Truncated):
                codec.decode(_pack(raw[:cut]))


class TestIntegrity:
    """Signature checks."""

    def test_wrong_key(self, codec, admin, other_keys):
        """A token from key A does not verify under key B."""
        token = codec.encode(admin)
        with pytest.raises(InvalidSignature):
            decode(token, UserBuilder(), other_keys)

    def test_every_byte_flip_rejected(self, codec, admin):
        """Flipping any single byte never yields a successful decode."""
        raw = _raw(codec.encode(admin))
        for i in range(len(raw)):
            tampered = bytearray(raw)
            tampered[i] ^= 0x01
            with pytest.raises(DecodeError):
                codec.decode(_pack(bytes(tampered)))

    def test_modified_ciphertext_rejected(self, codec, admin):
        """Changing ciphertext without re-signing fails integrity."""
        raw = bytearray(_raw(codec.encode(admin)))
        raw[7] ^= 0xFF
        with pytest.raises(InvalidSignature):
            codec.decode(_pack(bytes(raw)))

    def test_resigned_ciphertext_verifies(self, keys):
        """Changed ciphertext passes verification only when re-signed."""
        raw = bytearray(_raw(encode(None, lambda _: (b"ada", b"\x01\x00"), keys)))
        raw[7] ^= 0x01
        signed = bytes(raw[: 4 + 3 + 2])
        forged = signed + keys.signer().sign(signed)

        visible, opaque = decode(_pack(forged), lambda v, o: (v, o), keys)
        assert visible == b"ada"
        assert opaque == b"\x00\x00"

    def test_shifted_split_rejected(self, codec, admin):
        """Moving bytes between segments breaks the signature."""
        raw = bytearray(_raw(codec.encode(admin)))
        struct.pack_into("<HH", raw, 0, 4, 1)
        with pytest.raises(InvalidSignature):
            codec.decode(_pack(bytes(raw)))

    def test_trailing_bytes_rejected(self, codec, admin):
        """Bytes after the signature are rejected."""
        raw = _raw(codec.encode(admin)) + b"\x00"
        with pytest.raises(InvalidSignature):
            codec.decode(_pack(raw))

    def test_signature_failure_is_401(self, codec, admin, other_keys):
        """Integrity failures map to an authentication failure."""
        with pytest.raises(InvalidSignature) as exc:
            decode(codec.encode(admin), UserBuilder(), other_keys)
        assert exc.value.status_code == 401
        assert exc.value.code == "invalid_signature"


class TestSchemaErrors:
    """Builder failures surface as BadToken."""

    def test_wrong_opaque_length(self, keys):
        """A signed token with a 3-byte scope is a schema error."""
        token = encode(None, lambda _: (b"ada", b"\x01\x00\x00"), keys)
        with pytest.raises(BadToken) as exc:
            decode(token, UserBuilder(), keys)
        assert exc.value.status_code == 400

    def test_short_opaque(self, keys):
        """A 1-byte scope is a malformed field."""
        token = encode(None, lambda _: (b"ada", b"\x01"), keys)
        with pytest.raises(BadToken) as exc:
            decode(token, UserBuilder(), keys)
        assert isinstance(exc.value.cause, MalformedField)

    def test_invalid_utf8(self, keys):
        """A non-UTF-8 username is a schema error."""
        token = encode(None, lambda _: (b"\xff\xfe", b"\x00\x00"), keys)
        with pytest.raises(BadToken):
            decode(token, UserBuilder(), keys)


class TestKeyRoles:
    """Signing and verify-only stores."""

    def test_verify_only_store_decodes(self, cipher_secret, admin):
        """A verifier holding the public key and cipher secret decodes."""
        issuer = KeyStore.generate(cipher_secret=cipher_secret)
        verifier = KeyStore.from_public_key_jwk(issuer.public_key_jwk(), cipher_secret)

        token = encode(admin, UserExtractor(), issuer)
        assert decode(token, UserBuilder(), verifier) == admin

    def test_verify_only_store_cannot_encode(self, keys, cipher_secret, admin):
        """Encoding needs the private key."""
        verifier = KeyStore.from_public_key_jwk(keys.public_key_jwk(), cipher_secret)
        with pytest.raises(KeyStoreError):
            encode(admin, UserExtractor(), verifier)

    def test_wrong_cipher_secret(self, private_key, cipher_secret, admin):
        """A different cipher secret yields garbage, never the original opaque bytes."""
        issuer = KeyStore.from_private_key(private_key, cipher_secret=cipher_secret)
        verifier = KeyStore.from_public_key(private_key.public_key(), b"another-deployment-secret-value!")

        token = encode(None, lambda _: (b"ada", b"\x01\x00" * 8), issuer)
        _, opaque = decode(token, lambda v, o: (v, o), verifier)
        assert opaque != b"\x01\x00" * 8

    def test_codec_shares_keys(self, keys):
        """TokenCodec exposes its capabilities and keys."""
        codec = TokenCodec(UserExtractor(), UserBuilder(), keys)
        assert codec.keys is keys
        assert isinstance(codec.builder, UserBuilder)
