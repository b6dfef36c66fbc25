# foodshare/models/donation.py
from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from foodshare.core.geo import DEFAULT_CENTER, DEFAULT_JITTER, haversine_km, normalize_coordinates
from foodshare.core.states import DonationStatus, Party

PICKUP_TIME_FORMAT = "%Y-%m-%d %H:%M"
_PICKUP_TIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}$")


class PickupDetails(BaseModel):
    """What the reserving organization proposes for the pickup."""
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    pickup_time: str = Field(..., alias="pickupTime")
    pickup_person_name: str = Field(..., alias="pickupPersonName", min_length=1, max_length=120)
    pickup_person_id: str = Field(..., alias="pickupPersonId", min_length=6, max_length=20)

    @field_validator("pickup_time")
    @classmethod
    def _check_pickup_time(cls, v: str) -> str:
        if not _PICKUP_TIME_RE.match(v):
            raise ValueError("pickupTime must be formatted as YYYY-MM-DD HH:MM")
        datetime.strptime(v, PICKUP_TIME_FORMAT)  # rejects 2025-02-30 and friends
        return v


class ReservationDetails(BaseModel):
    pickup_time: str
    pickup_person_name: str
    pickup_person_id: str
    verification_code: str


class HistoryEntry(BaseModel):
    at: datetime
    by_user: Optional[str] = None
    from_status: Optional[DonationStatus] = None
    to_status: DonationStatus
    note: Optional[str] = None


class Donation(BaseModel):
    """A donation record as read from the store. Writes go through the store only."""

    id: str
    status: DonationStatus = DonationStatus.AVAILABLE
    donor_id: str
    donor_name: Optional[str] = None

    title: str
    description: str = ""
    category: str
    quantity: int = 1
    expiry_date: Optional[datetime] = None
    pickup_address: str = ""
    pickup_latitude: float
    pickup_longitude: float

    reserved_by: Optional[str] = None
    reserved_at: Optional[datetime] = None
    reservation_details: Optional[ReservationDetails] = None
    business_confirmed: Optional[bool] = None

    donor_confirmed: bool = False
    recipient_confirmed: bool = False
    donor_confirmed_at: Optional[datetime] = None
    recipient_confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 1
    history: List[HistoryEntry] = []

    @classmethod
    def from_document(
        cls,
        doc: Dict[str, Any],
        *,
        default_center: Tuple[float, float] = DEFAULT_CENTER,
        jitter: float = DEFAULT_JITTER,
    ) -> "Donation":
        data = {k: v for k, v in doc.items() if k != "_id"}
        data["id"] = str(doc.get("_id", doc.get("id")))
        # legacy rows may carry bad coordinates; normalize for reading, don't persist
        data["pickup_latitude"], data["pickup_longitude"] = normalize_coordinates(
            doc.get("pickup_latitude"), doc.get("pickup_longitude"),
            seed=data["id"], default=default_center, jitter=jitter,
        )
        for flag in ("donor_confirmed", "recipient_confirmed"):
            data[flag] = bool(doc.get(flag) or False)
        return cls.model_validate(data)

    def party_of(self, user_id: str) -> Optional[Party]:
        if user_id == self.donor_id:
            return Party.DONOR
        if self.reserved_by is not None and user_id == self.reserved_by:
            return Party.RECIPIENT
        return None

    def to_public(self, origin: Optional[Tuple[float, float]] = None) -> Dict[str, Any]:
        """Read-only view for listings and map/export consumers. Never includes the verification code.

        With ``origin`` (lat, lng) the view also carries ``distance_km`` to the pickup point.
        """
        out = self.model_dump(mode="json", exclude={"history"})
        details = out.get("reservation_details")
        if details:
            details.pop("verification_code", None)
        out["history_count"] = len(self.history)
        if origin is not None:
            out["distance_km"] = round(
                haversine_km(origin[0], origin[1], self.pickup_latitude, self.pickup_longitude), 2,
            )
        return out


def confirmed_flag(party: Party) -> str:
    return f"{party.value}_confirmed"


def confirmed_at_field(party: Party) -> str:
    return f"{party.value}_confirmed_at"


def other_party(party: Party) -> Party:
    return Party.RECIPIENT if party == Party.DONOR else Party.DONOR
