import os

# The backend key has no default so services fail fast without one.
# Provide a test value so Settings() can be constructed in tests.
os.environ.setdefault("SUPABASE_KEY", "test-service-key")
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")

from typing import TYPE_CHECKING

import pytest

from rideshare.core.retry import RetryConfig
from rideshare.location import LocationService
from rideshare.maps import GoogleMapsClient
from rideshare.notifications import NotificationService
from rideshare.payments import PaymentService, ReceiptService, WalletService
from rideshare.pricing import FareCalculator, SurgePricingService
from rideshare.rides import QuickBookService, RideService
from rideshare.settings import MatchingSettings, PaymentSettings, PushSettings
from tests.factories import RowFactory, create_faker_instance
from tests.fakes import EXPO_URL, FakeBackend

if TYPE_CHECKING:
    from faker.proxy import Faker


@pytest.fixture
def fake() -> "Faker":
    """Seeded Faker instance for deterministic test data."""
    return create_faker_instance(seed=42)


@pytest.fixture
def rows() -> RowFactory:
    """Factory for backend rows with seeded Faker."""
    return RowFactory(seed=42)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def fast_matching() -> MatchingSettings:
    """Matching settings that never sleep, for polling loops."""
    return MatchingSettings(
        max_attempts=2,
        attempt_interval_seconds=0,
        poll_interval_seconds=0,
        acceptance_timeout_seconds=0,
        booking_timeout_seconds=300,
    )


@pytest.fixture
def maps_client() -> GoogleMapsClient:
    return GoogleMapsClient(
        api_key="test-maps-key",
        base_url="https://maps.test/maps/api",
        retry_config=RetryConfig(max_attempts=1, base_delay=0),
    )


@pytest.fixture
def offline_maps() -> GoogleMapsClient:
    """Client without a key: distances come from the Haversine estimate."""
    return GoogleMapsClient(api_key="")


@pytest.fixture
def notifications(backend: FakeBackend) -> NotificationService:
    return NotificationService(backend, PushSettings(expo_url=EXPO_URL))


@pytest.fixture
def wallet(backend: FakeBackend) -> WalletService:
    return WalletService(backend)


@pytest.fixture
def receipts(backend: FakeBackend) -> ReceiptService:
    return ReceiptService(backend)


@pytest.fixture
def payments(backend: FakeBackend, wallet: WalletService, receipts: ReceiptService) -> PaymentService:
    return PaymentService(
        backend, wallet, receipts, PaymentSettings(key_id="rzp_test", key_secret="test-secret")
    )


@pytest.fixture
def surge(backend: FakeBackend) -> SurgePricingService:
    return SurgePricingService(backend)


@pytest.fixture
def ride_service(
    backend: FakeBackend,
    offline_maps: GoogleMapsClient,
    surge: SurgePricingService,
    wallet: WalletService,
    notifications: NotificationService,
    fast_matching: MatchingSettings,
) -> RideService:
    return RideService(
        backend, offline_maps, FareCalculator(), surge, wallet, notifications, fast_matching
    )


@pytest.fixture
def quick_book_service(
    backend: FakeBackend,
    ride_service: RideService,
    notifications: NotificationService,
    fast_matching: MatchingSettings,
) -> QuickBookService:
    return QuickBookService(
        backend, ride_service, LocationService(backend), notifications, fast_matching
    )


@pytest.fixture
def driver_accepts(backend: FakeBackend, notifications: NotificationService, monkeypatch):
    """The first notified driver accepts the booking right away."""
    notified = []

    async def create_notification(user_id, notification):
        notified.append((user_id, notification))
        booking_id = (notification.data or {}).get("bookingId")
        driver = next((d for d in backend.rows("drivers") if d["user_id"] == user_id), None)
        for booking in backend.rows("bookings"):
            if driver and booking["id"] == booking_id and booking["status"] == "pending":
                booking.update(status="accepted", driver_id=driver["id"])
        return True

    monkeypatch.setattr(notifications, "create_notification", create_notification)
    return notified
