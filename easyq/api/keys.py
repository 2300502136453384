"""
Key Distribution API Routes

Runs QKD sessions and channel audits on the runtime's connection.
"""

import logging
from typing import Optional

from fastapi import APIRouter

from ..schemas import ChannelOptionsDocument, KeyOptionsDocument
from .dependencies import RuntimeDep, TokenDep

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/generate")
async def generate_key(
    token: TokenDep,
    runtime: RuntimeDep,
    body: Optional[KeyOptionsDocument] = None,
):
    """
    Distribute a shared secret key.

    A Compromised or Inconclusive verdict is a normal response with no
    key, not an error.
    """
    options = body.to_options() if body else None
    result = await runtime.generate_key(options)
    if not result.key:
        logger.warning("Key request ended %s: %s", result.verdict.value, result.failure_reason)
    return result.to_dict()


@router.post("/verify-channel")
async def verify_channel(
    token: TokenDep,
    runtime: RuntimeDep,
    body: Optional[ChannelOptionsDocument] = None,
):
    options = body.to_options() if body else None
    report = await runtime.verify_channel_security(options)
    return report.to_dict()
