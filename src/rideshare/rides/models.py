from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from rideshare.geo import Coordinates
from rideshare.pricing import VehicleType


class BookingStatus(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    CONFIRMED = "confirmed"
    STARTED = "started"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    SCHEDULED = "scheduled"
    TIMEOUT = "timeout"


class ScheduledRideStatus(StrEnum):
    PENDING = "pending"
    BOOKED = "booked"
    CANCELLED = "cancelled"


class Place(BaseModel):
    """A point with the address shown to riders."""

    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)
    address: str

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(lat=self.lat, lng=self.lng)


class RidePreferences(BaseModel):
    ac: bool | None = None
    music: bool | None = None
    pets: bool | None = None


class Ride(BaseModel):
    """A row of the ``bookings`` table."""

    model_config = ConfigDict(extra="ignore")

    id: str
    status: BookingStatus
    pickup_location: str | None = None
    drop_location: str | None = None
    pickup_lat: float | None = None
    pickup_lng: float | None = None
    drop_lat: float | None = None
    drop_lng: float | None = None
    price_per_seat: float | None = None
    total_amount: float = 0
    driver_id: str | None = None
    passenger_id: str | None = None
    trip_id: str | None = None
    created_at: datetime | None = None
    scheduled_time: datetime | None = None
    preferences: dict[str, Any] | None = None
    vehicle_type: VehicleType | None = None
    payment_method: str | None = None
    cancellation_reason: str | None = None
    refund_amount: float | None = None


class DriverMatch(BaseModel):
    id: str
    name: str
    rating: float = 0
    total_trips: int = 0
    vehicle_type: VehicleType
    vehicle_number: str | None = None
    distance_m: float
    eta_mins: int
    current_lat: float
    current_lng: float
    user_id: str | None = None


class OperationResult(BaseModel):
    success: bool
    error: str | None = None


class CancellationResult(OperationResult):
    refund_amount: int | None = None


class MatchResult(OperationResult):
    estimated_arrival: int | None = None


class QuickBookRequest(BaseModel):
    drop: Place
    pickup: Place | None = None
    vehicle_type: VehicleType = VehicleType.BIKE
    promo_code: str | None = None
    discount_amount: float = Field(default=0, ge=0)
    preferences: RidePreferences | None = None


class QuickBookResponse(OperationResult):
    booking_id: str | None = None
    estimated_fare: int | None = None
    estimated_arrival: int | None = None


class RecentDestination(BaseModel):
    drop_location: str
    drop_lat: float | None = None
    drop_lng: float | None = None


class ScheduledRide(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str
    pickup_location: str
    pickup_lat: float
    pickup_lng: float
    drop_location: str
    drop_lat: float
    drop_lng: float
    scheduled_time: datetime
    vehicle_type: VehicleType = VehicleType.BIKE
    preferences: dict[str, Any] | None = None
    status: ScheduledRideStatus = ScheduledRideStatus.PENDING
    booking_id: str | None = None
    created_at: datetime | None = None

    @property
    def pickup(self) -> Place:
        return Place(lat=self.pickup_lat, lng=self.pickup_lng, address=self.pickup_location)

    @property
    def drop(self) -> Place:
        return Place(lat=self.drop_lat, lng=self.drop_lng, address=self.drop_location)
