"""
Reference session token: a username with a scope bitmask.

The username travels in the visible segment as UTF-8. The scope travels in
the opaque segment as a little-endian 16-bit bitmask.
"""

import enum
import struct
from dataclasses import dataclass
from typing import Iterable, List

from tessera.capabilities import FieldExtractor, Segments, TokenBuilder
from tessera.errors import MalformedField, TrailingData

_SCOPE = struct.Struct("<H")


class Scope(enum.IntFlag):
    """Authorization scopes carried in the opaque segment."""

    EMPTY = 0
    ADMIN = 1 << 0

    @classmethod
    def from_bits_truncate(cls, bits: int) -> "Scope":
        """Keep only the bits of known scopes."""
        known = 0
        for member in cls:
            known |= member.value
        return cls(bits & known)

    @classmethod
    def union(cls, scopes: Iterable["Scope"]) -> "Scope":
        result = cls.EMPTY
        for scope in scopes:
            result |= scope
        return result

    def members(self) -> List["Scope"]:
        """Individual scopes set in this mask, lowest bit first."""
        return [m for m in type(self) if m.value and (self & m) == m]


@dataclass(frozen=True)
class User:
    username: str
    scope: Scope = Scope.EMPTY

    @property
    def is_admin(self) -> bool:
        return Scope.ADMIN in self.scope

    def to_dict(self) -> dict:
        return {
            "username": self.username,
            "scopes": [m.name for m in self.scope.members()],
        }


class UserExtractor(FieldExtractor[User]):
    def extract(self, token: User) -> Segments:
        return token.username.encode("utf-8"), _SCOPE.pack(int(token.scope))


class UserBuilder(TokenBuilder[User]):
    """Rebuilds a User; the opaque segment must be exactly the 2-byte scope."""

    def build(self, visible: bytes, opaque: bytes) -> User:
        if len(opaque) < _SCOPE.size:
            raise MalformedField(f"scope field must be {_SCOPE.size} bytes, got {len(opaque)}")
        if len(opaque) > _SCOPE.size:
            raise TrailingData(f"{len(opaque) - _SCOPE.size} unexpected bytes after the scope field")
        try:
            username = bytes(visible).decode("utf-8")
        except UnicodeDecodeError:
            raise MalformedField("username is not valid UTF-8") from None
        (bits,) = _SCOPE.unpack(opaque)
        return User(username=username, scope=Scope.from_bits_truncate(bits))
