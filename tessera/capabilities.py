"""
Tessera capability interfaces.

Applications plug their own token shape into the codec through two small
contracts:

- ``FieldExtractor`` splits a domain token into a visible segment (sent in
  clear, signed) and an opaque segment (encrypted, signed).
- ``TokenBuilder`` reconstructs the domain token from the decoded segments.

Both may be implemented as classes or supplied as plain functions, which are
wrapped by ``FunctionExtractor`` / ``FunctionBuilder``.
"""

import struct
from abc import ABC, abstractmethod
from typing import Any, Callable, Generic, Tuple, TypeVar, Union

from tessera.errors import BuildError, MalformedField

T = TypeVar("T")

Segments = Tuple[bytes, bytes]


class FieldExtractor(ABC, Generic[T]):
    """Splits a domain token into (visible, opaque) byte segments."""

    @abstractmethod
    def extract(self, token: T) -> Segments:
        """
        Return the visible and opaque segments for ``token``.

        Must be pure and must not fail for well-formed tokens. Length limits
        are enforced by the codec, not here.
        """
        pass


class TokenBuilder(ABC, Generic[T]):
    """Rebuilds a domain token from decoded (visible, opaque) segments."""

    @abstractmethod
    def build(self, visible: bytes, opaque: bytes) -> T:
        """
        Reconstruct a token.

        Implementations must consume the whole opaque segment.

        Raises:
            TrailingData: If the opaque segment has unconsumed bytes.
            MalformedField: If a field has an unexpected length or encoding.
        """
        pass


class FunctionExtractor(FieldExtractor[T]):
    """
    Adapts a callable ``fn(token) -> (visible, opaque)`` to ``FieldExtractor``.

    Example:
        >>> extractor = FunctionExtractor(lambda t: (t.name.encode(), b""))
    """

    def __init__(self, fn: Callable[[T], Tuple[Any, Any]]):
        if not callable(fn):
            raise ValueError("FunctionExtractor requires a callable")
        self._fn = fn

    def extract(self, token: T) -> Segments:
        visible, opaque = self._fn(token)
        return bytes(visible), bytes(opaque)

    def __repr__(self) -> str:
        return f"FunctionExtractor({self._fn!r})"


class FunctionBuilder(TokenBuilder[T]):
    """
    Adapts a callable ``fn(visible, opaque) -> token`` to ``TokenBuilder``.

    ``BuildError`` raised by the callable propagates unchanged. ``ValueError``
    (which covers ``UnicodeDecodeError``) and ``struct.error`` are reported as
    ``MalformedField`` so that plain parsing code can be used directly.
    """

    def __init__(self, fn: Callable[[bytes, bytes], T]):
        if not callable(fn):
            raise ValueError("FunctionBuilder requires a callable")
        self._fn = fn

    def build(self, visible: bytes, opaque: bytes) -> T:
        try:
            return self._fn(visible, opaque)
        except BuildError:
            raise
        except (ValueError, struct.error) as e:
            raise MalformedField(str(e)) from e

    def __repr__(self) -> str:
        return f"FunctionBuilder({self._fn!r})"


def as_extractor(obj: Union[FieldExtractor[T], Callable[[T], Tuple[Any, Any]]]) -> FieldExtractor[T]:
    """Return ``obj`` if it already is a FieldExtractor, otherwise wrap it."""
    if isinstance(obj, FieldExtractor):
        return obj
    return FunctionExtractor(obj)


def as_builder(obj: Union[TokenBuilder[T], Callable[[bytes, bytes], T]]) -> TokenBuilder[T]:
    """Return ``obj`` if it already is a TokenBuilder, otherwise wrap it."""
    if isinstance(obj, TokenBuilder):
        return obj
    return FunctionBuilder(obj)
