"""
Tessera FastAPI integration.

Usage:
    from fastapi import Depends, FastAPI
    from tessera.integrations.fastapi import SessionDependency

    app = FastAPI()
    current_user = SessionDependency(SessionAuthenticator(UserBuilder(), keys))

    @app.get("/awesome")
    def awesome(user: User = Depends(current_user)):
        return {"username": user.username}
"""

from typing import Any

from fastapi import HTTPException, Request, Response

from tessera import config
from tessera.binding import SessionAuthenticator, build_session_cookie


class SessionDependency:
    """
    FastAPI dependency resolving the request's session token.

    Rejected requests raise ``HTTPException`` with the error code as detail:
    401 for a missing session or a bad signature, 400 for a malformed request
    or token.
    """

    def __init__(self, authenticator: SessionAuthenticator):
        self.authenticator = authenticator

    async def __call__(self, request: Request) -> Any:
        outcome = self.authenticator.authenticate(request.headers, request.cookies)
        if outcome.authenticated:
            return outcome.token

        headers = None
        if outcome.status_code == 401:
            headers = {"WWW-Authenticate": config.AUTH_HEADER_SCHEME}
        raise HTTPException(status_code=outcome.status_code, detail=outcome.error_code, headers=headers)


def set_session_cookie(response: Response, token: str, **cookie_options: Any) -> None:
    """Attach the session cookie to ``response``. Options go to build_session_cookie."""
    response.headers.append("set-cookie", build_session_cookie(token, **cookie_options))
