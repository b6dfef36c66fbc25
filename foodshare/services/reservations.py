# foodshare/services/reservations.py
"""Reservation side of the donation lifecycle.

    available --reserve--> reserved (pending donor decision)
    reserved(pending) --accept--> reserved (confirmable)
    reserved(pending) --reject--> available

Both transitions are single conditional writes in the store. A lost race is
reported (NotAvailableError / NotReservedError) and never retried here: the
caller should re-fetch the donation and show its current state.
"""
from __future__ import annotations

import logging
from typing import Any, Mapping, Union

import pydantic

from foodshare.core.errors import (
    ConflictError,
    ForbiddenError,
    NotAvailableError,
    NotFoundError,
    NotReservedError,
    ValidationError,
)
from foodshare.core.security import Principal
from foodshare.core.states import DonationStatus
from foodshare.core.verification import generate_code
from foodshare.models.donation import Donation, PickupDetails
from foodshare.repos.base import CLEARED_RESERVATION, DonationStore, utcnow

logger = logging.getLogger(__name__)


def _pickup_details(raw: Union[PickupDetails, Mapping[str, Any]]) -> PickupDetails:
    if isinstance(raw, PickupDetails):
        return raw
    try:
        return PickupDetails.model_validate(dict(raw or {}))
    except pydantic.ValidationError as ex:
        first = ex.errors()[0]
        field = ".".join(str(x) for x in first["loc"])
        raise ValidationError(f"{field}: {first['msg']}", field=field) from ex


class ReservationManager:

    def __init__(self, store: DonationStore, code_length: int = 6):
        self.store = store
        self.code_length = code_length

    async def reserve(
        self,
        donation_id: str,
        principal: Principal,
        pickup_details: Union[PickupDetails, Mapping[str, Any]],
    ) -> str:
        """Claim an available donation for ``principal``; returns the verification code.

        The code is handed out only here. Later reads never include it.
        """
        details = _pickup_details(pickup_details)
        if not principal.is_organization:
            raise ForbiddenError("Only organizations can reserve donations", donation_id=donation_id)

        try:
            current = await self.store.get(donation_id)
        except NotFoundError as ex:
            raise NotAvailableError("Donation is not available for reservation", donation_id=donation_id) from ex
        if current.donor_id == principal.id:
            raise ForbiddenError("Donors cannot reserve their own donations", donation_id=donation_id)

        code = generate_code(self.code_length)
        patch = {
            **CLEARED_RESERVATION,
            "reserved_by": principal.id,
            "reserved_at": utcnow(),
            "reservation_details": {**details.model_dump(), "verification_code": code},
        }
        try:
            await self.store.compare_and_swap_status(
                donation_id,
                DonationStatus.AVAILABLE,
                DonationStatus.RESERVED,
                patch,
                by_user=principal.id,
            )
        except ConflictError as ex:
            logger.info(
                "reservation lost",
                extra={"donation_id": donation_id, "user_id": principal.id, "error_code": ex.code},
            )
            raise NotAvailableError(
                "Donation is not available for reservation", donation_id=donation_id,
            ) from ex

        logger.info(
            "donation reserved",
            extra={"donation_id": donation_id, "user_id": principal.id, "to_status": "reserved"},
        )
        return code

    async def business_confirm(self, donation_id: str, principal: Principal, accept: bool) -> Donation:
        """Donor accepts or rejects the proposed pickup. Rejection returns the donation to the pool."""
        donation = await self.store.get(donation_id)
        if donation.donor_id != principal.id:
            raise ForbiddenError("Only the donor can accept or reject the pickup", donation_id=donation_id)
        if donation.status != DonationStatus.RESERVED:
            raise NotReservedError(
                f"Donation is {donation.status.value}, not reserved", donation_id=donation_id,
            )

        pending = {"business_confirmed": None, "reserved_by": donation.reserved_by}
        try:
            if accept:
                updated = await self.store.compare_and_swap_status(
                    donation_id,
                    DonationStatus.RESERVED,
                    DonationStatus.RESERVED,
                    {"business_confirmed": True},
                    expect=pending,
                    by_user=principal.id,
                )
            else:
                updated = await self.store.compare_and_swap_status(
                    donation_id,
                    DonationStatus.RESERVED,
                    DonationStatus.AVAILABLE,
                    dict(CLEARED_RESERVATION),
                    expect=pending,
                    by_user=principal.id,
                )
        except ConflictError as ex:
            raise NotReservedError(
                "The reservation changed before the decision was recorded", donation_id=donation_id,
            ) from ex

        logger.info(
            "pickup accepted" if accept else "pickup rejected",
            extra={
                "donation_id": donation_id,
                "user_id": principal.id,
                "from_status": "reserved",
                "to_status": updated.status.value,
            },
        )
        return updated
