"""Donation store contract and the document rules both stores share.

Every lifecycle write is one conditional update against a single donation
document: the store checks the expected state and applies the change in the
same step, so concurrent callers cannot both win. Completion is decided
inside ``apply_confirmation``, never by a follow-up read.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from bson import ObjectId

from foodshare.core.errors import (
    AlreadyConfirmedError,
    ForbiddenError,
    InvalidStateError,
    VerificationError,
)
from foodshare.core.geo import DEFAULT_CENTER, DEFAULT_JITTER, normalize_coordinates
from foodshare.core.states import DonationStatus, Party, status_value, transition_note
from foodshare.core.verification import codes_match
from foodshare.models.donation import Donation, confirmed_flag

# fields only the lifecycle core may write
LIFECYCLE_FIELDS = {
    "status", "reserved_by", "reserved_at", "reservation_details", "business_confirmed",
    "donor_confirmed", "recipient_confirmed", "donor_confirmed_at",
    "recipient_confirmed_at", "completed_at",
}

# what a reservation cycle resets when it ends without completing
CLEARED_RESERVATION = {
    "reserved_by": None,
    "reserved_at": None,
    "reservation_details": None,
    "business_confirmed": None,
    "donor_confirmed": False,
    "recipient_confirmed": False,
    "donor_confirmed_at": None,
    "recipient_confirmed_at": None,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def check_patch(patch: Dict[str, Any]) -> None:
    """Lifecycle writes may only touch lifecycle fields; content and ownership are immutable."""
    illegal = set(patch) - (LIFECYCLE_FIELDS - {"status"})
    if illegal:
        raise ValueError(f"patch may not modify: {sorted(illegal)}")


def oid() -> str:
    return str(ObjectId())


def history_entry(src, dst, by_user: Optional[str], note: Optional[str], at: datetime) -> Dict[str, Any]:
    return {
        "at": at,
        "by_user": by_user,
        "from_status": status_value(src) if src is not None else None,
        "to_status": status_value(dst),
        "note": note or (transition_note(src, dst) if src is not None else None),
    }


def new_document(
    fields: Dict[str, Any],
    *,
    default_center=DEFAULT_CENTER,
    jitter: float = DEFAULT_JITTER,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Build the stored document for a donor-created donation."""
    now = now or utcnow()
    _id = fields.get("_id") or oid()
    donor_id = fields.get("donor_id")
    if not donor_id:
        raise ValueError("donor_id is required")
    lat, lng = normalize_coordinates(
        fields.get("pickup_latitude"), fields.get("pickup_longitude"),
        seed=_id, default=default_center, jitter=jitter,
    )
    doc = {k: v for k, v in fields.items() if k not in LIFECYCLE_FIELDS}
    doc.update({
        "_id": _id,
        "donor_id": str(donor_id),
        "category": str(fields.get("category", "")).lower().strip(),
        "quantity": int(fields.get("quantity") or 1),
        "pickup_address": (fields.get("pickup_address") or f"Lat: {lat:.6f}, Lng: {lng:.6f}").strip(),
        "pickup_latitude": lat,
        "pickup_longitude": lng,
        "status": DonationStatus.AVAILABLE.value,
        **CLEARED_RESERVATION,
        "completed_at": None,
        "created_at": now,
        "updated_at": now,
        "version": 1,
        "history": [history_entry(None, DonationStatus.AVAILABLE, str(donor_id), "created", now)],
    })
    return doc


def check_confirmation(
    doc: Dict[str, Any], party: Party, verification_code: str, by_user: Optional[str] = None,
) -> None:
    """Raise the error that explains why ``party`` may not confirm ``doc`` now.

    Order matters: state is checked before the code so an unaccepted
    reservation never reveals whether a guessed code was right.
    """
    donation_id = str(doc.get("_id"))
    if doc.get("status") != DonationStatus.RESERVED.value:
        raise InvalidStateError(
            f"Donation must be reserved to confirm (status is '{doc.get('status')}')",
            donation_id=donation_id,
        )
    if party == Party.RECIPIENT and by_user is not None and doc.get("reserved_by") != by_user:
        raise ForbiddenError(
            "Only the organization holding the reservation can confirm", donation_id=donation_id,
        )
    if doc.get("business_confirmed") is not True:
        raise InvalidStateError(
            "The donor has not accepted the pickup yet", donation_id=donation_id,
        )
    details = doc.get("reservation_details") or {}
    if not codes_match(details.get("verification_code"), verification_code):
        raise VerificationError("Verification code does not match", donation_id=donation_id)
    if doc.get(confirmed_flag(party)):
        raise AlreadyConfirmedError(
            f"The {party.value} already confirmed this donation", donation_id=donation_id,
        )


class DonationStore(Protocol):
    """Contract for donation persistence, implemented by the in-memory and Mongo stores."""

    async def create(self, fields: Dict[str, Any]) -> Donation: ...

    async def get(self, donation_id: str) -> Donation: ...

    async def list(
        self,
        *,
        status: Optional[str] = None,
        category: Optional[str] = None,
        reserved_by: Optional[str] = None,
        donor_id: Optional[str] = None,
        limit: int = 50,
    ) -> List[Donation]: ...

    async def count(self, **filters: Any) -> int: ...

    async def compare_and_swap_status(
        self,
        donation_id: str,
        expected_status: str,
        new_status: str,
        patch: Dict[str, Any],
        *,
        expect: Optional[Dict[str, Any]] = None,
        by_user: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Donation: ...

    async def apply_confirmation(
        self,
        donation_id: str,
        party: Party,
        verification_code: str,
        *,
        by_user: Optional[str] = None,
    ) -> Donation: ...

    async def expire_overdue(self, now: Optional[datetime] = None) -> int: ...
