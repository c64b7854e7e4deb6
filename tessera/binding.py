"""
Tessera request binding.

Locates a session token on an incoming request and validates it:

1. ``Authorization: Bearer <token>`` header, if present.
2. Otherwise the session cookie.

Framework-agnostic: takes plain header and cookie mappings, so it can sit
behind any web framework (see ``tessera.integrations.fastapi``).

Usage:
    authenticator = SessionAuthenticator(UserBuilder(), keys)
    outcome = authenticator.authenticate(request.headers, request.cookies)
    if not outcome.authenticated:
        return Response(status=outcome.status_code)
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from typing import Generic, List, Mapping, Optional, TypeVar

from tessera import config
from tessera.codec import BuilderLike, decode
from tessera.capabilities import as_builder
from tessera.errors import (
    AuthRequestError,
    DecodeError,
    InvalidHeaderFormat,
    NoSession,
    SessionRejected,
    UnsupportedAuthScheme,
)
from tessera.keys import KeyStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _get_header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def extract_transport_token(
    headers: Mapping[str, str],
    cookies: Optional[Mapping[str, str]] = None,
    cookie_name: str = config.SESSION_COOKIE_NAME,
) -> str:
    """
    Pull the transport string out of a request.

    The Authorization header takes precedence over the cookie.

    Raises:
        NoSession: Neither the header nor the cookie is present.
        UnsupportedAuthScheme: The header uses a scheme other than Bearer.
        InvalidHeaderFormat: The header is empty or carries no token.
    """
    header = _get_header(headers, config.AUTH_HEADER_NAME)
    if header is not None:
        value = header.strip()
        if not value:
            raise InvalidHeaderFormat()
        parts = value.split(None, 1)
        if parts[0] != config.AUTH_HEADER_SCHEME:
            if parts[0].startswith(config.AUTH_HEADER_SCHEME):
                # "Bearer" glued to the token
                raise InvalidHeaderFormat()
            raise UnsupportedAuthScheme()
        if len(parts) < 2:
            raise InvalidHeaderFormat()
        return parts[1].strip()

    if cookies:
        value = cookies.get(cookie_name)
        if value:
            return value.strip()

    raise NoSession()


@dataclass
class AuthOutcome(Generic[T]):
    """Result of binding a request to a session."""

    status_code: int
    token: Optional[T] = None
    error: Optional[AuthRequestError] = None

    @property
    def authenticated(self) -> bool:
        return self.error is None

    @property
    def error_code(self) -> Optional[str]:
        return self.error.code if self.error is not None else None


class SessionAuthenticator(Generic[T]):
    """
    Validates the session token carried by a request.

    Example:
        >>> authenticator = SessionAuthenticator(UserBuilder(), keys)
        >>> outcome = authenticator.authenticate({"Authorization": f"Bearer {token}"}, {})
        >>> outcome.token.username
        'ada'
    """

    def __init__(
        self,
        builder: BuilderLike,
        keys: KeyStore,
        cookie_name: str = config.SESSION_COOKIE_NAME,
    ):
        if not cookie_name:
            raise ValueError("SessionAuthenticator requires a 'cookie_name'")
        self.builder = as_builder(builder)
        self.keys = keys
        self.cookie_name = cookie_name

    def require(self, headers: Mapping[str, str], cookies: Optional[Mapping[str, str]] = None) -> T:
        """
        Return the session token or raise.

        Raises:
            AuthRequestError: ``status_code`` on the exception gives the HTTP status.
        """
        transport = extract_transport_token(headers, cookies, self.cookie_name)
        try:
            return decode(transport, self.builder, self.keys)
        except DecodeError as e:
            raise SessionRejected(e) from e

    def authenticate(
        self, headers: Mapping[str, str], cookies: Optional[Mapping[str, str]] = None
    ) -> AuthOutcome[T]:
        """Like ``require`` but returns an AuthOutcome instead of raising."""
        try:
            token = self.require(headers, cookies)
        except NoSession as e:
            logger.debug("Request carries no session")
            return AuthOutcome(status_code=e.status_code, error=e)
        except AuthRequestError as e:
            logger.warning(f"Session rejected: {e.code}")
            return AuthOutcome(status_code=e.status_code, error=e)
        return AuthOutcome(status_code=200, token=token)


# =============================================================================
# Response helpers
# =============================================================================


def bearer_header(token: str) -> str:
    """Authorization header value for ``token``."""
    return f"{config.AUTH_HEADER_SCHEME} {token}"


def build_session_cookie(
    token: str,
    name: str = config.SESSION_COOKIE_NAME,
    max_age_days: int = config.COOKIE_MAX_AGE_DAYS,
    path: str = "/",
    secure: bool = True,
    http_only: bool = True,
    same_site: str = "Strict",
    partitioned: bool = True,
    now: Optional[datetime] = None,
) -> str:
    """
    Build a ``Set-Cookie`` header value carrying the session token.

    Args:
        token: Transport string from ``encode``.
        max_age_days: Cookie lifetime; sets both Max-Age and Expires.
        same_site: "Strict", "Lax" or "None".
        now: Reference time for Expires (defaults to the current UTC time).
    """
    if same_site not in ("Strict", "Lax", "None"):
        raise ValueError(f"Invalid SameSite value: {same_site}")
    if same_site == "None" and not secure:
        raise ValueError("SameSite=None requires Secure")
    if partitioned and not secure:
        raise ValueError("Partitioned requires Secure")

    now = now or datetime.now(timezone.utc)
    max_age = int(timedelta(days=max_age_days).total_seconds())
    attrs: List[str] = [
        f"{name}={token}",
        f"Path={path}",
        f"Max-Age={max_age}",
        f"Expires={format_datetime(now + timedelta(seconds=max_age), usegmt=True)}",
        f"SameSite={same_site}",
    ]
    if secure:
        attrs.append("Secure")
    if http_only:
        attrs.append("HttpOnly")
    if partitioned:
        attrs.append("Partitioned")
    return "; ".join(attrs)
