# foodshare/routers/donations.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from foodshare.core.config import Settings
from foodshare.core.errors import ForbiddenError, ValidationError
from foodshare.core.security import Principal, get_current_principal
from foodshare.core.states import DonationStatus
from foodshare.deps import (
    get_confirmation_coordinator,
    get_reservation_manager,
    get_settings_dep,
    get_store,
)
from foodshare.models.donation import PickupDetails
from foodshare.models.schemas import (
    BusinessConfirmIn,
    ConfirmIn,
    DonationCreatedOut,
    DonationIn,
    StatusOut,
    VerificationCodeOut,
)
from foodshare.repos.base import DonationStore
from foodshare.services.confirmations import ConfirmationCoordinator
from foodshare.services.reservations import ReservationManager

router = APIRouter(prefix="/donations", tags=["donations"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=DonationCreatedOut)
async def create_donation(
    body: DonationIn,
    principal: Principal = Depends(get_current_principal),
    store: DonationStore = Depends(get_store),
):
    if principal.user_type != "donor":
        raise ForbiddenError("Only donors can publish donations")

    # pickup_* wins over the bare latitude/longitude pair
    lat = body.pickup_latitude if body.pickup_latitude is not None else body.latitude
    lng = body.pickup_longitude if body.pickup_longitude is not None else body.longitude
    donation = await store.create({
        "donor_id": principal.id,
        "donor_name": body.donor_name,
        "title": body.title,
        "description": body.description,
        "category": body.category,
        "quantity": body.quantity,
        "expiry_date": body.expiry_date,
        "pickup_address": body.pickup_address,
        "pickup_latitude": lat,
        "pickup_longitude": lng,
    })
    return DonationCreatedOut(
        id=donation.id,
        pickup_latitude=donation.pickup_latitude,
        pickup_longitude=donation.pickup_longitude,
    )


@router.get("")
async def list_donations(
    status_q: Optional[DonationStatus] = Query(None, alias="status"),
    category: Optional[str] = None,
    reserved_by: Optional[str] = None,
    near_lat: Optional[float] = Query(None, ge=-90, le=90),
    near_lng: Optional[float] = Query(None, ge=-180, le=180),
    principal: Principal = Depends(get_current_principal),
    store: DonationStore = Depends(get_store),
    settings: Settings = Depends(get_settings_dep),
) -> List[dict]:
    if (near_lat is None) != (near_lng is None):
        raise ValidationError("near_lat and near_lng must be given together", field="near_lat")
    origin = (near_lat, near_lng) if near_lat is not None else None
    docs = await store.list(
        status=status_q,
        category=category.lower().strip() if category else None,
        reserved_by=reserved_by,
        limit=settings.list_limit,
    )
    return [d.to_public(origin) for d in docs]


@router.get("/my")
async def my_donations(
    principal: Principal = Depends(get_current_principal),
    store: DonationStore = Depends(get_store),
) -> List[dict]:
    docs = await store.list(donor_id=principal.id, limit=1000)
    return [d.to_public() for d in docs]


@router.get("/{donation_id}")
async def get_donation(
    donation_id: str,
    principal: Principal = Depends(get_current_principal),
    store: DonationStore = Depends(get_store),
) -> dict:
    donation = await store.get(donation_id)
    return donation.to_public()


# ---------- Lifecycle ----------

@router.post(
    "/{donation_id}/reserve",
    status_code=status.HTTP_201_CREATED,
    response_model=VerificationCodeOut,
)
async def reserve_donation(
    donation_id: str,
    body: PickupDetails,
    principal: Principal = Depends(get_current_principal),
    manager: ReservationManager = Depends(get_reservation_manager),
):
    code = await manager.reserve(donation_id, principal, body)
    return VerificationCodeOut(verification_code=code)


@router.post("/{donation_id}/business-confirm", response_model=StatusOut)
async def business_confirm(
    donation_id: str,
    body: BusinessConfirmIn,
    principal: Principal = Depends(get_current_principal),
    manager: ReservationManager = Depends(get_reservation_manager),
):
    donation = await manager.business_confirm(donation_id, principal, body.accept)
    return {"status": donation.status.value}


@router.post("/{donation_id}/confirm", response_model=StatusOut)
async def confirm_pickup(
    donation_id: str,
    body: ConfirmIn,
    principal: Principal = Depends(get_current_principal),
    coordinator: ConfirmationCoordinator = Depends(get_confirmation_coordinator),
):
    donation = await coordinator.confirm(donation_id, principal, body.verification_code)
    return {"status": donation.status.value}
