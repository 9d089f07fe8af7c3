"""Command routes: the host's chat framework forwards one command per request.

Endpoints:
  GET  /commands          Registered command names and descriptions
  POST /commands/{name}   Run a command; the host states whether the sender is authorized
"""

import logging

from fastapi import APIRouter, HTTPException

from .commands import COMMANDS, CommandContext
from .models import CommandRequest, CommandResponse

router = APIRouter(prefix="/commands", tags=["commands"])
logger = logging.getLogger(__name__)


def _get_commands():
    from .main import get_commands
    return get_commands()


@router.get("")
async def list_commands():
    """Command table for the host's registration step."""
    return {
        "commands": [
            {"name": spec.name, "description": spec.description, "operation": spec.operation.value}
            for spec in COMMANDS.values()
        ]
    }


@router.post("/{name}", response_model=CommandResponse)
async def run_command(name: str, request: CommandRequest) -> CommandResponse:
    ctx = CommandContext(args=request.args, is_authorized_sender=request.authorized)
    reply = await _get_commands().dispatch(name, ctx)
    if reply is None:
        logger.info("Unknown command requested: %s", name)
        raise HTTPException(status_code=404, detail=f"Unknown command: '{name}'")
    return CommandResponse(text=reply.text)
