"""
Unit tests for the reference User token.
"""

import pytest

from tessera import MalformedField, TrailingData
from tessera.users import Scope, User, UserBuilder, UserExtractor


class TestScope:
    """Scope bitmask."""

    def test_admin_is_bit_zero(self):
        assert int(Scope.ADMIN) == 1
        assert int(Scope.EMPTY) == 0

    def test_from_bits_truncate(self):
        """Unknown bits are dropped."""
        assert Scope.from_bits_truncate(0xFFFF) == Scope.ADMIN
        assert Scope.from_bits_truncate(0x0002) == Scope.EMPTY

    def test_union(self):
        assert Scope.union([]) == Scope.EMPTY
        assert Scope.union([Scope.ADMIN, Scope.EMPTY]) == Scope.ADMIN

    def test_members(self):
        assert Scope.ADMIN.members() == [Scope.ADMIN]
        assert Scope.EMPTY.members() == []


class TestUser:
    def test_is_admin(self):
        assert User("ada", Scope.ADMIN).is_admin is True
        assert User("ada").is_admin is False

    def test_to_dict(self):
        assert User("ada", Scope.ADMIN).to_dict() == {"username": "ada", "scopes": ["ADMIN"]}


class TestUserExtractor:
    """Segment layout of the reference token."""

    def test_admin_segments(self):
        """{ada, ADMIN} -> visible b'ada', opaque [0x01, 0x00]."""
        visible, opaque = UserExtractor().extract(User("ada", Scope.ADMIN))
        assert visible == b"ada"
        assert opaque == bytes([0x01, 0x00])

    def test_empty_user(self):
        visible, opaque = UserExtractor().extract(User("", Scope.EMPTY))
        assert visible == b""
        assert opaque == b"\x00\x00"


class TestUserBuilder:
    """Schema validation."""

    def test_round_trip_law(self):
        """build(extract(t)) == t."""
        user = User("grace", Scope.ADMIN)
        assert UserBuilder().build(*UserExtractor().extract(user)) == user

    def test_short_scope(self):
        with pytest.raises(MalformedField):
            UserBuilder().build(b"ada", b"\x01")

    def test_missing_scope(self):
        with pytest.raises(MalformedField):
            UserBuilder().build(b"ada", b"")

    def test_trailing_bytes(self):
        with pytest.raises(TrailingData):
            UserBuilder().build(b"ada", b"\x01\x00\x00")

    def test_invalid_utf8(self):
        with pytest.raises(MalformedField, match="UTF-8"):
            UserBuilder().build(b"\xc3\x28", b"\x00\x00")

    def test_unknown_scope_bits_truncated(self):
        user = UserBuilder().build(b"ada", b"\xff\xff")
        assert user.scope == Scope.ADMIN
