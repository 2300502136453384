from fastapi import APIRouter

from ..schemas import SearchRequest
from .dependencies import RuntimeDep, TokenDep

router = APIRouter()


@router.post("")
async def search(body: SearchRequest, token: TokenDep, runtime: RuntimeDep):
    """
    Search `items` for entries matching `predicate`.

    Always check `confidence` and `degraded` before treating a miss as
    proof of absence.
    """
    options = body.options.to_options() if body.options else None
    result = await runtime.search(body.items, body.predicate, options)
    return result.to_dict()
