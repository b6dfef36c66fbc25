# foodshare/repos/inmemory.py
from __future__ import annotations

import asyncio
import copy
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from foodshare.core.errors import ConflictError, InvalidStateError, NotFoundError
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

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class InMemoryDonationStore:
    """Process-local store. One lock guards every read-modify-write, held only for that write."""

    def __init__(self, default_center=DEFAULT_CENTER, jitter: float = DEFAULT_JITTER):
        self.donations: Dict[str, dict] = {}
        self._lock = asyncio.Lock()
        self._default_center = default_center
        self._jitter = jitter

    def _to_model(self, doc: dict) -> Donation:
        return Donation.from_document(
            copy.deepcopy(doc), default_center=self._default_center, jitter=self._jitter,
        )

    async def create(self, fields: Dict[str, Any]) -> Donation:
        doc = new_document(fields, default_center=self._default_center, jitter=self._jitter)
        async with self._lock:
            if doc["_id"] in self.donations:
                raise ConflictError(f"Donation '{doc['_id']}' already exists", donation_id=doc["_id"])
            self.donations[doc["_id"]] = doc
            return self._to_model(doc)

    async def get(self, donation_id: str) -> Donation:
        doc = self.donations.get(donation_id)
        if doc is None:
            raise NotFoundError(donation_id)
        return self._to_model(doc)

    def _matching(self, status=None, category=None, reserved_by=None, donor_id=None) -> List[dict]:
        out = []
        for d in self.donations.values():
            if status is not None and d["status"] != status_value(status):
                continue
            if category is not None and d.get("category") != category:
                continue
            if reserved_by is not None and d.get("reserved_by") != reserved_by:
                continue
            if donor_id is not None and d.get("donor_id") != donor_id:
                continue
            out.append(d)
        return out

    async def list(
        self,
        *,
        status: Optional[str] = None,
        category: Optional[str] = None,
        reserved_by: Optional[str] = None,
        donor_id: Optional[str] = None,
        limit: int = 50,
    ) -> List[Donation]:
        # newest first; insertion order breaks timestamp ties
        docs = self._matching(status, category, reserved_by, donor_id)[::-1]
        docs.sort(key=lambda d: as_utc(d.get("created_at") or _EPOCH), reverse=True)
        return [self._to_model(d) for d in docs[:limit]]

    async def count(self, **filters: Any) -> int:
        statuses = filters.pop("status_in", None)
        docs = self._matching(**filters)
        if statuses is not None:
            wanted = {status_value(s) for s in statuses}
            docs = [d for d in docs if d["status"] in wanted]
        return len(docs)

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
        async with self._lock:
            doc = self.donations.get(donation_id)
            if doc is None or doc["status"] != status_value(expected_status):
                raise ConflictError(
                    f"Donation '{donation_id}' is no longer {status_value(expected_status)}",
                    donation_id=donation_id,
                )
            for field, value in (expect or {}).items():
                if doc.get(field) != value:
                    raise ConflictError(
                        f"Donation '{donation_id}' changed ({field})", donation_id=donation_id,
                    )
            now = utcnow()
            doc.update(copy.deepcopy(patch))
            doc["status"] = status_value(new_status)
            doc["updated_at"] = now
            doc["version"] = doc.get("version", 1) + 1
            doc.setdefault("history", []).append(
                history_entry(expected_status, new_status, by_user, note, now)
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
        async with self._lock:
            doc = self.donations.get(donation_id)
            if doc is None:
                raise NotFoundError(donation_id)
            check_confirmation(doc, party, verification_code, by_user)

            now = utcnow()
            doc[confirmed_flag(party)] = True
            doc[confirmed_at_field(party)] = now
            note = f"{party.value} confirmed"
            if doc.get(confirmed_flag(other_party(party))):
                doc["status"] = DonationStatus.COMPLETED.value
                doc["completed_at"] = now
                doc.setdefault("history", []).append(
                    history_entry(DonationStatus.RESERVED, DonationStatus.COMPLETED, by_user, note, now)
                )
            else:
                doc.setdefault("history", []).append(
                    history_entry(DonationStatus.RESERVED, DonationStatus.RESERVED, by_user, note, now)
                )
            doc["updated_at"] = now
            doc["version"] = doc.get("version", 1) + 1
            return self._to_model(doc)

    async def expire_overdue(self, now: Optional[datetime] = None) -> int:
        now = as_utc(now) if now else utcnow()
        expired = 0
        async with self._lock:
            for doc in self.donations.values():
                exp = doc.get("expiry_date")
                if doc["status"] != DonationStatus.AVAILABLE.value or exp is None:
                    continue
                if as_utc(exp) >= now:
                    continue
                doc["status"] = DonationStatus.EXPIRED.value
                doc["updated_at"] = now
                doc["version"] = doc.get("version", 1) + 1
                doc.setdefault("history", []).append(
                    history_entry(DonationStatus.AVAILABLE, DonationStatus.EXPIRED, None, None, now)
                )
                expired += 1
        return expired
