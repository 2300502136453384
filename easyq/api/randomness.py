from typing import Optional

from fastapi import APIRouter, Query

from .dependencies import RuntimeDep, TokenDep

router = APIRouter()


@router.get("/int")
async def random_int(
    token: TokenDep,
    runtime: RuntimeDep,
    min_value: int = Query(alias="min"),
    max_value: int = Query(alias="max"),
    timeout: Optional[float] = None,
):
    result = await runtime.random_int(min_value, max_value, timeout)
    return result.to_dict()


@router.get("/bytes")
async def random_bytes(
    token: TokenDep,
    runtime: RuntimeDep,
    length: int,
    timeout: Optional[float] = None,
):
    """Random bytes, base64 encoded, with their provenance."""
    result = await runtime.random_bytes(length, timeout)
    return result.to_dict()
