from contextlib import asynccontextmanager

from fastapi import FastAPI

from sabzzi.config import Settings
from sabzzi.context import create_context
from sabzzi.fastapi import api
from sabzzi.fastapi.errors import install_error_handlers
from sabzzi.fastapi.logging import AccessLogMiddleware, configure_access_logging


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - startup path
    """Create the application context in each process.

    Configuration is read from SABZZI_* environment variables (set by the CLI
    entrypoint) so that uvicorn reload / multiprocess workers inherit the settings.
    """
    configure_access_logging()
    ctx = await create_context(Settings.from_env())
    app.state.ctx = ctx
    ctx.start_background()
    yield
    await ctx.close()


app = FastAPI(title="Sabzzi Auth", lifespan=lifespan)
app.add_middleware(AccessLogMiddleware)
install_error_handlers(app)

app.include_router(api.router, prefix="/auth/api")
