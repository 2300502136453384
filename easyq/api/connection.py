"""
Connection API Routes

Configure, inspect and release the runtime's quantum connection.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter

from ..exceptions import NotInitializedError
from .dependencies import RuntimeDep, TokenDep

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("")
async def configure_connection(config: Dict[str, Any], token: TokenDep, runtime: RuntimeDep):
    """Connect to a quantum resource, replacing any current connection."""
    connection = await runtime.configure(config)
    logger.info("Connection %s configured via API", connection.connection_id)
    return connection.to_dict()


@router.get("")
async def get_connection(token: TokenDep, runtime: RuntimeDep):
    try:
        connection = runtime.manager.active_connection().to_dict()
    except NotInitializedError:
        connection = None

    return {
        "state": runtime.manager.state.value,
        "version": runtime.version,
        "connection": connection,
    }


@router.delete("")
async def release_connection(token: TokenDep, runtime: RuntimeDep):
    await runtime.manager.disconnect()
    logger.info("Connection released via API")
    return {"state": runtime.manager.state.value}
