import asyncio

import pytest
from httpx import AsyncClient

from foodshare.core.security import Principal

from factories import CODE, DONOR, ORG_1, ORG_2, PICKUP

pytestmark = pytest.mark.anyio


async def _create(ac: AsyncClient, headers, **overrides) -> str:
    body = {
        "title": "Bread",
        "description": "Day-old loaves",
        "category": "Bakery",
        "quantity": 12,
        "pickup_latitude": 4.80501,
        "pickup_longitude": -75.68,
        **overrides,
    }
    r = await ac.post("/donations", json=body, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()["id"]


async def test_example_scenario(test_client: AsyncClient, headers_for):
    donor_h, org_h = headers_for(DONOR), headers_for(ORG_1)
    d1 = await _create(test_client, donor_h)

    r = await test_client.post(f"/donations/{d1}/reserve", json=PICKUP, headers=org_h)
    assert r.status_code == 201, r.text
    code = r.json()["verificationCode"]
    assert len(code) == 6 and code.isdigit()

    r = await test_client.post(f"/donations/{d1}/business-confirm", json={"accept": True}, headers=donor_h)
    assert r.status_code == 200, r.text
    assert r.json() == {"status": "reserved"}

    r = await test_client.post(f"/donations/{d1}/confirm", json={"verificationCode": code}, headers=donor_h)
    assert r.status_code == 200, r.text
    assert r.json() == {"status": "reserved"}

    r = await test_client.get(f"/donations/{d1}", headers=org_h)
    assert r.json()["donor_confirmed"] is True

    r = await test_client.post(f"/donations/{d1}/confirm", json={"verificationCode": code}, headers=org_h)
    assert r.status_code == 200, r.text
    assert r.json() == {"status": "completed"}


async def test_reservation_race(test_client: AsyncClient, headers_for):
    d1 = await _create(test_client, headers_for(DONOR))
    r1, r2 = await asyncio.gather(
        test_client.post(f"/donations/{d1}/reserve", json=PICKUP, headers=headers_for(ORG_1)),
        test_client.post(f"/donations/{d1}/reserve", json=PICKUP, headers=headers_for(ORG_2)),
    )
    assert sorted([r1.status_code, r2.status_code]) == [201, 409]
    loser = r1 if r1.status_code == 409 else r2
    assert loser.json()["error"]["code"] == "NOT_AVAILABLE"


@pytest.mark.parametrize("body", [
    {"pickupTime": "2025-06-01 10:00", "pickupPersonName": "Ana"},
    {**PICKUP, "pickupTime": "tomorrow"},
    {**PICKUP, "pickupPersonId": "123"},
    {},
])
async def test_reserve_rejects_bad_fields(test_client: AsyncClient, headers_for, body):
    d1 = await _create(test_client, headers_for(DONOR))
    r = await test_client.post(f"/donations/{d1}/reserve", json=body, headers=headers_for(ORG_1))
    assert r.status_code == 400, r.text
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_reserve_requires_auth(test_client: AsyncClient, headers_for):
    d1 = await _create(test_client, headers_for(DONOR))
    r = await test_client.post(f"/donations/{d1}/reserve", json=PICKUP)
    assert r.status_code == 401
    r = await test_client.post(
        f"/donations/{d1}/reserve", json=PICKUP, headers={"Authorization": "Bearer not-a-token"},
    )
    assert r.status_code == 401


async def test_reserve_as_donor_is_forbidden(test_client: AsyncClient, headers_for):
    d1 = await _create(test_client, headers_for(DONOR))
    r = await test_client.post(
        f"/donations/{d1}/reserve", json=PICKUP,
        headers=headers_for(Principal(id="donor-2", user_type="donor")),
    )
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "FORBIDDEN"


async def test_reserve_unknown_donation(test_client: AsyncClient, headers_for):
    r = await test_client.post("/donations/nope/reserve", json=PICKUP, headers=headers_for(ORG_1))
    assert r.status_code == 409


async def test_rejection_frees_donation(test_client: AsyncClient, headers_for):
    donor_h = headers_for(DONOR)
    d1 = await _create(test_client, donor_h)
    await test_client.post(f"/donations/{d1}/reserve", json=PICKUP, headers=headers_for(ORG_1))

    r = await test_client.post(f"/donations/{d1}/business-confirm", json={"accept": True}, headers=headers_for(ORG_1))
    assert r.status_code == 403

    r = await test_client.post(f"/donations/{d1}/business-confirm", json={"accept": False}, headers=donor_h)
    assert r.status_code == 200
    assert r.json() == {"status": "available"}

    body = (await test_client.get(f"/donations/{d1}", headers=donor_h)).json()
    assert body["reserved_by"] is None
    assert body["reservation_details"] is None

    r = await test_client.post(f"/donations/{d1}/reserve", json=PICKUP, headers=headers_for(ORG_2))
    assert r.status_code == 201

    # the new reservation starts with a pending decision; only one decision is accepted
    r = await test_client.post(f"/donations/{d1}/business-confirm", json={"accept": True}, headers=donor_h)
    assert r.json() == {"status": "reserved"}
    r = await test_client.post(f"/donations/{d1}/business-confirm", json={"accept": False}, headers=donor_h)
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "NOT_RESERVED"


async def test_business_confirm_unknown_donation(test_client: AsyncClient, headers_for):
    r = await test_client.post("/donations/nope/business-confirm", json={"accept": True}, headers=headers_for(DONOR))
    assert r.status_code == 404


async def test_confirm_errors(test_client: AsyncClient, headers_for):
    donor_h, org_h = headers_for(DONOR), headers_for(ORG_1)
    d1 = await _create(test_client, donor_h)
    code = (await test_client.post(f"/donations/{d1}/reserve", json=PICKUP, headers=org_h)).json()["verificationCode"]

    r = await test_client.post(f"/donations/{d1}/confirm", json={"verificationCode": code}, headers=org_h)
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "INVALID_STATE"

    await test_client.post(f"/donations/{d1}/business-confirm", json={"accept": True}, headers=donor_h)

    wrong = "000000" if code != "000000" else "111111"
    r = await test_client.post(f"/donations/{d1}/confirm", json={"verificationCode": wrong}, headers=org_h)
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "VERIFICATION_FAILED"

    r = await test_client.post(
        f"/donations/{d1}/confirm", json={"verificationCode": code}, headers=headers_for(ORG_2),
    )
    assert r.status_code == 403

    r = await test_client.post(f"/donations/{d1}/confirm", json={"verificationCode": code}, headers=org_h)
    assert r.status_code == 200
    r = await test_client.post(f"/donations/{d1}/confirm", json={"verificationCode": code}, headers=org_h)
    assert r.status_code == 409
    error = r.json()["error"]
    assert error["code"] == "ALREADY_CONFIRMED"
    assert error["severity"] == "info"


async def test_confirm_requires_code(test_client: AsyncClient, headers_for):
    r = await test_client.post("/donations/x/confirm", json={}, headers=headers_for(DONOR))
    assert r.status_code == 400


async def test_reads_never_expose_code(test_client: AsyncClient, headers_for, store, reserved):
    for who in (DONOR, ORG_1):
        r = await test_client.get(f"/donations/{reserved.id}", headers=headers_for(who))
        assert r.status_code == 200
        assert CODE not in r.text
    r = await test_client.get("/donations", headers=headers_for(ORG_1))
    assert CODE not in r.text


async def test_listing_and_my_donations(test_client: AsyncClient, headers_for):
    donor_h = headers_for(DONOR)
    other_h = headers_for(Principal(id="donor-2", user_type="donor"))
    a = await _create(test_client, donor_h, category="Produce")
    b = await _create(test_client, donor_h, category="Bakery")
    c = await _create(test_client, other_h, category="Bakery")
    await test_client.post(f"/donations/{a}/reserve", json=PICKUP, headers=headers_for(ORG_1))

    r = await test_client.get("/donations", headers=donor_h)
    assert [d["id"] for d in r.json()] == [c, b, a]

    r = await test_client.get("/donations", params={"status": "available", "category": "bakery"}, headers=donor_h)
    assert {d["id"] for d in r.json()} == {b, c}

    r = await test_client.get("/donations", params={"reserved_by": ORG_1.id}, headers=donor_h)
    assert [d["id"] for d in r.json()] == [a]

    r = await test_client.get("/donations", params={"status": "bogus"}, headers=donor_h)
    assert r.status_code == 400

    r = await test_client.get("/donations/my", headers=donor_h)
    assert {d["id"] for d in r.json()} == {a, b}


async def test_create_normalizes_coordinates(test_client: AsyncClient, headers_for):
    donor_h = headers_for(DONOR)
    r = await test_client.post("/donations", headers=donor_h, json={
        "title": "Beans", "description": "Canned", "category": "canned", "quantity": 3,
        "latitude": 4.8123456789, "longitude": -75.7,
    })
    assert r.status_code == 201
    assert r.json()["pickup_latitude"] == 4.812346

    r = await test_client.post("/donations", headers=donor_h, json={
        "title": "Beans", "description": "Canned", "category": "canned", "quantity": 3,
    })
    assert r.status_code == 201
    assert abs(r.json()["pickup_latitude"] - 4.8133) <= 0.01


async def test_only_donors_create(test_client: AsyncClient, headers_for):
    r = await test_client.post("/donations", headers=headers_for(ORG_1), json={
        "title": "Beans", "description": "Canned", "category": "canned", "quantity": 3,
    })
    assert r.status_code == 403


async def test_create_validates_body(test_client: AsyncClient, headers_for):
    r = await test_client.post("/donations", headers=headers_for(DONOR), json={
        "title": "Beans", "description": "Canned", "category": "canned", "quantity": 0,
    })
    assert r.status_code == 400


async def test_stats(test_client: AsyncClient, headers_for):
    donor_h, org_h = headers_for(DONOR), headers_for(ORG_1)
    a = await _create(test_client, donor_h)
    await _create(test_client, donor_h)
    code = (await test_client.post(f"/donations/{a}/reserve", json=PICKUP, headers=org_h)).json()["verificationCode"]
    await test_client.post(f"/donations/{a}/business-confirm", json={"accept": True}, headers=donor_h)
    await test_client.post(f"/donations/{a}/confirm", json={"verificationCode": code}, headers=donor_h)
    await test_client.post(f"/donations/{a}/confirm", json={"verificationCode": code}, headers=org_h)

    r = await test_client.get("/stats", headers=donor_h)
    assert r.json() == {"totalDonations": 2, "activeDonations": 1, "completedDonations": 1, "impactScore": 10}

    r = await test_client.get("/stats", headers=org_h)
    assert r.json() == {"totalDonations": 1, "activeDonations": 0, "completedDonations": 1, "impactScore": 10}

    r = await test_client.get("/stats", headers=headers_for(Principal(id="root", user_type="admin")))
    assert r.json()["totalDonations"] == 0


async def test_health(test_client: AsyncClient):
    r = await test_client.get("/health")
    assert r.json() == {"ok": True}


async def test_listing_reports_distance_from_reference_point(test_client: AsyncClient, headers_for):
    donor_h = headers_for(DONOR)
    await _create(test_client, donor_h)

    r = await test_client.get("/donations", params={"near_lat": 4.80501, "near_lng": -75.68}, headers=donor_h)
    assert r.status_code == 200
    assert r.json()[0]["distance_km"] == 0

    r = await test_client.get("/donations", headers=donor_h)
    assert "distance_km" not in r.json()[0]

    r = await test_client.get("/donations", params={"near_lat": 4.8}, headers=donor_h)
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"
