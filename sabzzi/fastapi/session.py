"""
FastAPI-specific session handling.

This module provides:
- The session cookie dependency
- Setting and clearing the HTTP-only session cookie on responses

Token creation and validation live in sabzzi.authsession.
"""

from fastapi import Cookie, Response

from sabzzi.authsession import EXPIRES

AUTH_COOKIE_NAME = "sabzzi-session"
AUTH_COOKIE = Cookie(None, alias=AUTH_COOKIE_NAME)


def set_session_cookie(response: Response, token: str) -> None:
    """Set the session token as an HTTP-only cookie."""
    response.set_cookie(
        key=AUTH_COOKIE_NAME,
        value=token,
        max_age=int(EXPIRES.total_seconds()),
        httponly=True,
        secure=True,
        path="/",
        samesite="lax",  # lax survives the launch of an installed PWA
    )


def clear_session_cookie(response: Response) -> None:
    # FastAPI's delete_cookie does not set the secure attribute
    response.set_cookie(
        key=AUTH_COOKIE_NAME,
        value="",
        max_age=0,
        expires=0,
        httponly=True,
        secure=True,
        path="/",
        samesite="lax",
    )
