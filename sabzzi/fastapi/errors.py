"""Exception handlers mapping the error taxonomy to JSON responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from sabzzi.errors import AuthError, InvalidSession
from sabzzi.fastapi import session


def install_error_handlers(app: FastAPI) -> None:
    """Register standard exception handlers on *app*."""

    @app.exception_handler(AuthError)
    async def auth_error_handler(_request: Request, exc: AuthError):
        resp = JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
        if isinstance(exc, InvalidSession):
            session.clear_session_cookie(resp)
        return resp

    @app.exception_handler(Exception)
    async def general_exception_handler(_request: Request, exc: Exception):
        logging.exception("Unhandled exception in API app")
        return JSONResponse(
            status_code=500, content={"detail": "Internal server error"}
        )
