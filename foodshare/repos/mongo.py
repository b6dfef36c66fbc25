# foodshare/repos/mongo.py
"""MongoDB donation store (Motor).

Each lifecycle write is a single ``find_one_and_update`` whose filter carries
the expected state, so MongoDB's per-document atomicity gives first-writer-wins.
Confirmation uses an update pipeline so the completion check reads the other
party's flag inside the same write.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import ConnectionFailure, DuplicateKeyError

from foodshare.core.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    StoreUnavailableError,
)
from foodshare.core.geo import DEFAULT_CENTER, DEFAULT_JITTER
from foodshare.core.states import DonationStatus, Party, can_transition, status_value
from foodshare.models.donation import Donation, confirmed_at_field, confirmed_flag, other_party
from foodshare.repos.base import (
    as_utc,
    check_confirmation,
    check_patch,
    history_entry,
    new_document,
    utcnow,
)

logger = logging.getLogger(__name__)


@contextmanager
def _store_errors(operation: str):
    try:
        yield
    except ConnectionFailure as ex:
        logger.error(f"donation store {operation} failed: {ex}")
        raise StoreUnavailableError("Donation store is unavailable, try again later") from ex


# ---------- query builders (pure, no IO) ----------

def list_query(
    status: Optional[str] = None,
    category: Optional[str] = None,
    reserved_by: Optional[str] = None,
    donor_id: Optional[str] = None,
    status_in=None,
) -> Dict[str, Any]:
    q: Dict[str, Any] = {}
    if status is not None:
        q["status"] = status_value(status)
    if status_in is not None:
        q["status"] = {"$in": [status_value(s) for s in status_in]}
    if category is not None:
        q["category"] = category
    if reserved_by is not None:
        q["reserved_by"] = reserved_by
    if donor_id is not None:
        q["donor_id"] = donor_id
    return q


def cas_filter(donation_id: str, expected_status: str, expect: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    flt = {"_id": donation_id, "status": status_value(expected_status)}
    for field, value in (expect or {}).items():
        flt[field] = value
    return flt


def cas_update(
    expected_status: str,
    new_status: str,
    patch: Dict[str, Any],
    by_user: Optional[str],
    note: Optional[str],
    now: datetime,
) -> Dict[str, Any]:
    return {
        "$set": {**patch, "status": status_value(new_status), "updated_at": now},
        "$inc": {"version": 1},
        "$push": {"history": history_entry(expected_status, new_status, by_user, note, now)},
    }


def confirmation_filter(
    donation_id: str, party: Party, verification_code: str, by_user: Optional[str] = None,
) -> Dict[str, Any]:
    flt = {
        "_id": donation_id,
        "status": DonationStatus.RESERVED.value,
        "business_confirmed": True,
        "reservation_details.verification_code": str(verification_code).strip(),
        confirmed_flag(party): {"$ne": True},
    }
    if party == Party.RECIPIENT and by_user is not None:
        flt["reserved_by"] = by_user
    return flt


def confirmation_pipeline(party: Party, by_user: Optional[str], now: datetime) -> List[Dict[str, Any]]:
    completes = {"$eq": [f"${confirmed_flag(other_party(party))}", True]}
    entry = {
        "at": now,
        "by_user": {"$literal": by_user},
        "from_status": DonationStatus.RESERVED.value,
        "to_status": {"$cond": [completes, DonationStatus.COMPLETED.value, DonationStatus.RESERVED.value]},
        "note": {"$literal": f"{party.value} confirmed"},
    }
    return [{
        "$set": {
            confirmed_flag(party): True,
            confirmed_at_field(party): now,
            "status": {"$cond": [completes, DonationStatus.COMPLETED.value, "$status"]},
            "completed_at": {"$cond": [completes, now, "$completed_at"]},
            "updated_at": now,
            "version": {"$add": [{"$ifNull": ["$version", 1]}, 1]},
            "history": {"$concatArrays": [{"$ifNull": ["$history", []]}, [entry]]},
        }
    }]


class MongoDonationStore:

    def __init__(
        self,
        collection: AsyncIOMotorCollection,
        default_center=DEFAULT_CENTER,
        jitter: float = DEFAULT_JITTER,
    ):
        self.col = collection
        self._default_center = default_center
        self._jitter = jitter

    @classmethod
    def from_uri(cls, uri: str, db_name: str, **kwargs) -> "MongoDonationStore":
        client = AsyncIOMotorClient(uri, tz_aware=True, uuidRepresentation="standard")
        return cls(client[db_name]["donations"], **kwargs)

    def close(self) -> None:
        self.col.database.client.close()

    async def ensure_indexes(self) -> None:
        async def ensure_index(keys, name: str, **kwargs):
            existing = [ix["name"] async for ix in self.col.list_indexes()]
            if name in existing:
                return
            await self.col.create_index(keys, name=name, **kwargs)

        with _store_errors("index creation"):
            await ensure_index([("status", ASCENDING)], "status_1")
            await ensure_index([("donor_id", ASCENDING)], "donor_id_1")
            await ensure_index([("reserved_by", ASCENDING)], "reserved_by_1", sparse=True)
            await ensure_index([("expiry_date", ASCENDING)], "expiry_date_1", sparse=True)
            await ensure_index([("created_at", DESCENDING)], "created_at_-1")

    def _to_model(self, doc: dict) -> Donation:
        return Donation.from_document(doc, default_center=self._default_center, jitter=self._jitter)

    async def create(self, fields: Dict[str, Any]) -> Donation:
        doc = new_document(fields, default_center=self._default_center, jitter=self._jitter)
        with _store_errors("insert"):
            try:
                await self.col.insert_one(doc)
            except DuplicateKeyError:
                raise ConflictError(f"Donation '{doc['_id']}' already exists", donation_id=doc["_id"])
        return self._to_model(doc)

    async def get(self, donation_id: str) -> Donation:
        with _store_errors("read"):
            doc = await self.col.find_one({"_id": donation_id})
        if not doc:
            raise NotFoundError(donation_id)
        return self._to_model(doc)

    async def list(
        self,
        *,
        status: Optional[str] = None,
        category: Optional[str] = None,
        reserved_by: Optional[str] = None,
        donor_id: Optional[str] = None,
        limit: int = 50,
    ) -> List[Donation]:
        q = list_query(status, category, reserved_by, donor_id)
        with _store_errors("read"):
            cur = self.col.find(q).sort("created_at", DESCENDING).limit(limit)
            return [self._to_model(d) async for d in cur]

    async def count(self, **filters: Any) -> int:
        with _store_errors("count"):
            return await self.col.count_documents(list_query(**filters))

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
    ) -> Donation:
        if not can_transition(expected_status, new_status):
            raise InvalidStateError(
                f"Transition {status_value(expected_status)} -> {status_value(new_status)} is not allowed",
                donation_id=donation_id,
            )
        check_patch(patch)
        with _store_errors("update"):
            doc = await self.col.find_one_and_update(
                cas_filter(donation_id, expected_status, expect),
                cas_update(expected_status, new_status, patch, by_user, note, utcnow()),
                return_document=ReturnDocument.AFTER,
            )
        if doc is None:
            raise ConflictError(
                f"Donation '{donation_id}' is no longer {status_value(expected_status)}",
                donation_id=donation_id,
            )
        return self._to_model(doc)

    async def apply_confirmation(
        self,
        donation_id: str,
        party: Party,
        verification_code: str,
        *,
        by_user: Optional[str] = None,
    ) -> Donation:
        with _store_errors("update"):
            doc = await self.col.find_one_and_update(
                confirmation_filter(donation_id, party, verification_code, by_user),
                confirmation_pipeline(party, by_user, utcnow()),
                return_document=ReturnDocument.AFTER,
            )
            if doc is not None:
                return self._to_model(doc)
            # no match: read back only to explain why
            current = await self.col.find_one({"_id": donation_id})
        if current is None:
            raise NotFoundError(donation_id)
        check_confirmation(current, party, verification_code, by_user)
        raise ConflictError(
            f"Donation '{donation_id}' changed during confirmation", donation_id=donation_id,
        )

    async def expire_overdue(self, now: Optional[datetime] = None) -> int:
        now = as_utc(now) if now else utcnow()
        with _store_errors("update"):
            res = await self.col.update_many(
                {"status": DonationStatus.AVAILABLE.value, "expiry_date": {"$lt": now}},
                cas_update(DonationStatus.AVAILABLE, DonationStatus.EXPIRED, {}, None, None, now),
            )
        return res.modified_count
