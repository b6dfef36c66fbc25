from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

# --------------------------
# Donations (creation by donor)
# --------------------------
class DonationIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1, max_length=60)
    quantity: int = Field(..., gt=0)
    expiry_date: Optional[datetime] = None
    pickup_address: Optional[str] = None
    # either pair may be sent; pickup_* wins
    pickup_latitude: Optional[float] = None
    pickup_longitude: Optional[float] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    donor_name: Optional[str] = None


class DonationCreatedOut(BaseModel):
    id: str
    pickup_latitude: float
    pickup_longitude: float


# --------------------------
# Lifecycle
# --------------------------
class BusinessConfirmIn(BaseModel):
    accept: bool


class ConfirmIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    verification_code: str = Field(..., alias="verificationCode", min_length=1, max_length=32)


class VerificationCodeOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    verification_code: str = Field(..., alias="verificationCode")


class StatusOut(BaseModel):
    status: Literal["available", "reserved", "completed", "expired"]


# --------------------------
# Stats
# --------------------------
class StatsOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_donations: int = Field(0, alias="totalDonations")
    active_donations: int = Field(0, alias="activeDonations")
    completed_donations: int = Field(0, alias="completedDonations")
    impact_score: int = Field(0, alias="impactScore")
