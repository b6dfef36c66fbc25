# foodshare/services/confirmations.py
import logging

from foodshare.core.errors import ForbiddenError
from foodshare.core.security import Principal
from foodshare.core.states import DonationStatus
from foodshare.models.donation import Donation
from foodshare.repos.base import DonationStore

logger = logging.getLogger(__name__)


class ConfirmationCoordinator:
    """Records donor and recipient pickup confirmations.

    Completion is never requested here: the store marks the donation
    ``completed`` inside the write that records the second confirmation.
    """

    def __init__(self, store: DonationStore):
        self.store = store

    async def confirm(self, donation_id: str, principal: Principal, verification_code: str) -> Donation:
        donation = await self.store.get(donation_id)
        party = donation.party_of(principal.id)
        if party is None:
            raise ForbiddenError(
                "Only the donor or the reserving organization can confirm", donation_id=donation_id,
            )

        # VerificationError / InvalidStateError / AlreadyConfirmedError propagate as-is
        updated = await self.store.apply_confirmation(
            donation_id, party, verification_code, by_user=principal.id,
        )

        logger.info(
            "donation completed" if updated.status == DonationStatus.COMPLETED else "pickup confirmed",
            extra={
                "donation_id": donation_id,
                "user_id": principal.id,
                "party": party.value,
                "to_status": updated.status.value,
            },
        )
        return updated
