from .models import (
    BookingStatus,
    CancellationResult,
    DriverMatch,
    MatchResult,
    OperationResult,
    Place,
    QuickBookRequest,
    QuickBookResponse,
    RecentDestination,
    Ride,
    RidePreferences,
    ScheduledRide,
    ScheduledRideStatus,
)
from .quick_book import QuickBookService
from .ride_service import RideService, refund_percentage
from .scheduled import ScheduledRideManager

__all__ = [
    "BookingStatus",
    "CancellationResult",
    "DriverMatch",
    "MatchResult",
    "OperationResult",
    "Place",
    "QuickBookRequest",
    "QuickBookResponse",
    "QuickBookService",
    "RecentDestination",
    "Ride",
    "RidePreferences",
    "RideService",
    "ScheduledRide",
    "ScheduledRideManager",
    "ScheduledRideStatus",
    "refund_percentage",
]
