"""Service wiring: builds every service in dependency order."""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from rideshare.backend import create_backend_client
from rideshare.core.retry import RetryConfig
from rideshare.location import LocationService
from rideshare.maps import GoogleMapsClient
from rideshare.navigation import NavigationService
from rideshare.notifications import NotificationService
from rideshare.payments import PaymentService, ReceiptService, WalletService
from rideshare.pricing import FareCalculator, SurgePricingService
from rideshare.promotions import PromoCodeService, ReferralService
from rideshare.ride_logging import setup_logging
from rideshare.rides import QuickBookService, RideService, ScheduledRideManager
from rideshare.safety import SafetyService
from rideshare.settings import Settings, get_settings
from rideshare.social import ChatService, SocialService

if TYPE_CHECKING:
    from supabase import AsyncClient

logger = logging.getLogger(__name__)


@dataclass
class Services:
    backend: "AsyncClient"
    maps: GoogleMapsClient
    navigation: NavigationService
    fares: FareCalculator
    surge: SurgePricingService
    wallet: WalletService
    receipts: ReceiptService
    payments: PaymentService
    notifications: NotificationService
    location: LocationService
    rides: RideService
    quick_book: QuickBookService
    scheduled: ScheduledRideManager
    promo_codes: PromoCodeService
    referrals: ReferralService
    safety: SafetyService
    social: SocialService
    chat: ChatService


def create_maps_client(settings: Settings) -> GoogleMapsClient:
    maps = settings.maps
    if not maps.api_key:
        logger.warning("GOOGLE_MAPS_API_KEY not set, distances use Haversine estimates")
    return GoogleMapsClient(
        api_key=maps.api_key,
        base_url=maps.base_url,
        timeout=maps.timeout_seconds,
        fallback_speed_kmh=maps.fallback_speed_kmh,
        retry_config=RetryConfig.from_maps_settings(maps),
    )


def build_services(settings: Settings, backend: "AsyncClient") -> Services:
    """Wire the services around an existing backend client."""
    currency = settings.pricing.currency
    share_base_url = settings.app.share_base_url

    maps = create_maps_client(settings)
    fares = FareCalculator(settings.pricing)
    surge = SurgePricingService(backend, settings.pricing.timezone)

    wallet = WalletService(backend, currency)
    receipts = ReceiptService(backend)
    payments = PaymentService(backend, wallet, receipts, settings.payment, currency)

    notifications = NotificationService(backend, settings.push)
    location = LocationService(backend)

    rides = RideService(backend, maps, fares, surge, wallet, notifications, settings.matching)
    quick_book = QuickBookService(backend, rides, location, notifications, settings.matching)
    scheduled = ScheduledRideManager(backend, quick_book, notifications)

    return Services(
        backend=backend,
        maps=maps,
        navigation=NavigationService(maps),
        fares=fares,
        surge=surge,
        wallet=wallet,
        receipts=receipts,
        payments=payments,
        notifications=notifications,
        location=location,
        rides=rides,
        quick_book=quick_book,
        scheduled=scheduled,
        promo_codes=PromoCodeService(backend),
        referrals=ReferralService(backend, wallet),
        safety=SafetyService(backend, share_base_url),
        social=SocialService(backend, share_base_url),
        chat=ChatService(backend, notifications),
    )


async def create_services(settings: Settings | None = None) -> Services:
    """Configure logging, connect to the backend and wire every service."""
    settings = settings or get_settings()
    setup_logging(
        level=settings.logging.level,
        json_output=settings.logging.format == "json",
        environment=settings.logging.environment,
    )

    backend = await create_backend_client(settings.backend)
    logger.info(f"Backend client configured: {settings.backend.url}")
    return build_services(settings, backend)
