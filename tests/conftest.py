# tests/conftest.py
import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from foodshare.core.config import Settings
from foodshare.core.security import Principal, create_token
from foodshare.core.states import DonationStatus
from foodshare.main import create_app
from foodshare.repos.inmemory import InMemoryDonationStore

from factories import CODE, DONATION_FIELDS, ORG_1


@pytest.fixture(scope="session")
def anyio_backend():
    # keep AnyIO on asyncio for the whole test session
    return "asyncio"


@pytest.fixture
def settings():
    return Settings(_env_file=None, jwt_secret="test-secret-for-foodshare-api-suite", log_format="text")


@pytest.fixture
def store():
    return InMemoryDonationStore()


@pytest.fixture
async def donation(store):
    return await store.create(dict(DONATION_FIELDS))


@pytest.fixture
async def reserved(store, donation):
    """Donation reserved by ORG_1, donor decision still pending."""
    await store.compare_and_swap_status(
        donation.id,
        DonationStatus.AVAILABLE,
        DonationStatus.RESERVED,
        {
            "reserved_by": ORG_1.id,
            "reservation_details": {
                "pickup_time": "2025-06-01 10:00",
                "pickup_person_name": "Ana",
                "pickup_person_id": "123456",
                "verification_code": CODE,
            },
        },
    )
    return await store.get(donation.id)


@pytest.fixture
async def accepted(store, reserved):
    await store.compare_and_swap_status(
        reserved.id, DonationStatus.RESERVED, DonationStatus.RESERVED, {"business_confirmed": True},
    )
    return await store.get(reserved.id)


@pytest.fixture
def headers_for(settings):
    def make(principal: Principal) -> dict:
        tok = create_token(
            {"sub": principal.id, "user_type": principal.user_type},
            settings.jwt_secret, settings.jwt_alg, minutes=settings.access_ttl_min,
        )
        return {"Authorization": f"Bearer {tok}"}
    return make


@pytest.fixture
async def test_client(settings, store):
    app = create_app(settings=settings, store=store)
    async with LifespanManager(app):
        transport = ASGITransport(app=app, raise_app_exceptions=True)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
