"""
HTTP endpoints of the passkey ceremonies and session handling.

The ceremony endpoints are thin: they unpack the JSON body, call the
orchestrator and put the resulting session into a cookie. All failures are
AuthError exceptions turned into JSON by the app's error handlers.
"""

import logging

from fastapi import APIRouter, Body, Depends, Request, Response

from sabzzi.context import AppContext
from sabzzi.devauth import ensure_dev_account
from sabzzi.errors import Forbidden, InvalidArgument, InvalidSession

from . import session
from .session import AUTH_COOKIE

logger = logging.getLogger(__name__)

router = APIRouter()


def get_context(request: Request) -> AppContext:
    return request.app.state.ctx


def _pending_id(payload: dict) -> str:
    pending_id = payload.get("pendingId")
    if not isinstance(pending_id, str) or not pending_id:
        raise InvalidArgument("pendingId is required")
    return pending_id


def _credential(payload: dict) -> dict:
    credential = payload.get("credential")
    if not isinstance(credential, dict):
        raise InvalidArgument("credential is required")
    return credential


@router.post("/begin-registration")
async def begin_registration(
    payload: dict = Body(...), ctx: AppContext = Depends(get_context)
):
    options, pending_id = await ctx.ceremonies.begin_registration(
        payload.get("pin"), payload.get("name")
    )
    return {"options": options, "pendingId": pending_id}


@router.post("/complete-registration")
async def complete_registration(
    response: Response,
    payload: dict = Body(...),
    ctx: AppContext = Depends(get_context),
):
    account, token = await ctx.ceremonies.complete_registration(
        _pending_id(payload), payload.get("name"), _credential(payload)
    )
    session.set_session_cookie(response, token)
    return {"accountId": str(account.uuid), "name": account.display_name}


@router.post("/begin-authentication")
async def begin_authentication(ctx: AppContext = Depends(get_context)):
    options, pending_id = await ctx.ceremonies.begin_authentication()
    return {"options": options, "pendingId": pending_id}


@router.post("/complete-authentication")
async def complete_authentication(
    response: Response,
    payload: dict = Body(...),
    ctx: AppContext = Depends(get_context),
):
    account, token = await ctx.ceremonies.complete_authentication(
        _pending_id(payload), _credential(payload)
    )
    session.set_session_cookie(response, token)
    return {"accountId": str(account.uuid), "name": account.display_name}


@router.get("/check")
async def check(auth=AUTH_COOKIE, ctx: AppContext = Depends(get_context)):
    """Report whether the session cookie belongs to a signed in account."""
    if not auth:
        raise InvalidSession("Authentication required")
    s = await ctx.sessions.verify(auth)
    return {
        "authenticated": True,
        "accountId": str(s.account_uuid),
        "name": s.display_name,
    }


@router.post("/logout")
async def logout(
    response: Response, auth=AUTH_COOKIE, ctx: AppContext = Depends(get_context)
):
    session.clear_session_cookie(response)
    if not auth or not await ctx.sessions.revoke(auth):
        return {"message": "Already logged out"}
    return {"message": "Logged out successfully"}


@router.post("/dev-login")
async def dev_login(response: Response, ctx: AppContext = Depends(get_context)):
    """Sign in as the development account, only available in development mode."""
    if not ctx.settings.dev:
        raise Forbidden("Dev auth only available in development mode")
    account = await ensure_dev_account(ctx.credentials)
    token = ctx.sessions.issue(account.uuid, account.display_name)
    session.set_session_cookie(response, token)
    logger.info("Development login for %s", account.uuid)
    return {"accountId": str(account.uuid), "name": account.display_name}
