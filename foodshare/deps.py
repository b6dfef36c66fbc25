from fastapi import Depends, Request

from foodshare.core.config import Settings
from foodshare.repos.base import DonationStore
from foodshare.services.confirmations import ConfirmationCoordinator
from foodshare.services.reservations import ReservationManager


def build_store(settings: Settings) -> DonationStore:
    center = (settings.default_latitude, settings.default_longitude)
    if settings.use_mongo:
        from foodshare.repos.mongo import MongoDonationStore
        return MongoDonationStore.from_uri(
            settings.mongo_uri, settings.mongo_db, default_center=center, jitter=settings.geo_jitter,
        )
    from foodshare.repos.inmemory import InMemoryDonationStore
    return InMemoryDonationStore(default_center=center, jitter=settings.geo_jitter)


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> DonationStore:
    return request.app.state.store


def get_reservation_manager(
    store: DonationStore = Depends(get_store),
    settings: Settings = Depends(get_settings_dep),
) -> ReservationManager:
    return ReservationManager(store, code_length=settings.verification_code_length)


def get_confirmation_coordinator(store: DonationStore = Depends(get_store)) -> ConfirmationCoordinator:
    return ConfirmationCoordinator(store)
