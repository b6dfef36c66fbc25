from fastapi import APIRouter, Depends

from foodshare.core.security import Principal, get_current_principal
from foodshare.deps import get_store
from foodshare.models.schemas import StatsOut
from foodshare.services.stats import compute_overview

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("", response_model=StatsOut)
async def overview(principal: Principal = Depends(get_current_principal), store=Depends(get_store)):
    return await compute_overview(store, principal)
