# foodshare/services/stats.py
from foodshare.core.security import Principal
from foodshare.core.states import DonationStatus

IMPACT_PER_COMPLETED = 10


async def compute_overview(store, principal: Principal) -> dict:
    """
    Returns a dict that matches the StatsOut schema.

    Donors see their own donations; organizations see what they reserved.
    Anyone else gets zeros.
    """
    if principal.user_type == "donor":
        scope = {"donor_id": principal.id}
        active = [DonationStatus.AVAILABLE, DonationStatus.RESERVED]
    elif principal.user_type == "organization":
        scope = {"reserved_by": principal.id}
        active = [DonationStatus.RESERVED]
    else:
        return {"total_donations": 0, "active_donations": 0, "completed_donations": 0, "impact_score": 0}

    completed = await store.count(status=DonationStatus.COMPLETED, **scope)
    return {
        "total_donations": await store.count(**scope),
        "active_donations": await store.count(status_in=active, **scope),
        "completed_donations": completed,
        "impact_score": completed * IMPACT_PER_COMPLETED,
    }
