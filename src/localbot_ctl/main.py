"""LocalBot control service: status, model catalog, backend control and room resets."""

import logging
import time as _time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .backend_client import client
from .commands import LocalBotCommands
from .config import apply_plugin_config, load_plugin_config, settings

logger = logging.getLogger(__name__)

# Shared state populated at startup
_commands: LocalBotCommands | None = None
_start_time: float = 0.0


def get_commands() -> LocalBotCommands:
    if _commands is None:
        raise RuntimeError("LocalBot commands are not initialized")
    return _commands


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: configure logging, apply plugin config, init httpx pool."""
    global _commands, _start_time

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    effective = apply_plugin_config(settings, load_plugin_config(settings.plugin_config_path))
    _commands = LocalBotCommands(effective, http=client)
    logger.info(
        "Using endpoints=%s models=%s rooms=%s",
        effective.endpoints_path,
        effective.models_path,
        effective.rooms_path,
    )

    await client.start()
    _start_time = _time.time()
    logger.info("LocalBot control started")

    yield

    await client.stop()
    _commands = None
    logger.info("LocalBot control stopped")


app = FastAPI(title="LocalBot Control", version="1.0.0", lifespan=lifespan)


# --- Error handling ---


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error: %s", exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# --- Health endpoint ---


@app.get("/health")
async def health():
    return {"status": "ok", "uptime_seconds": round(_time.time() - _start_time, 1)}


# --- Routers ---

from .router_commands import router as commands_router  # noqa: E402

app.include_router(commands_router)
