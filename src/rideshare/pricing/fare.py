from enum import StrEnum

from pydantic import BaseModel, Field

from rideshare.core.exceptions import ValidationError
from rideshare.settings import PricingSettings
from rideshare.utils.numbers import round_half_up


class VehicleType(StrEnum):
    BIKE = "bike"
    AUTO = "auto"
    CAR = "car"


class VehicleRates(BaseModel):
    base: float
    per_km: float
    per_min: float


VEHICLE_RATES: dict[VehicleType, VehicleRates] = {
    VehicleType.BIKE: VehicleRates(base=25, per_km=14, per_min=2),
    VehicleType.AUTO: VehicleRates(base=35, per_km=18, per_min=2.5),
    VehicleType.CAR: VehicleRates(base=60, per_km=24, per_min=3),
}


class FareBreakdown(BaseModel):
    """Rounded fare components as shown to the passenger."""

    base_fare: int = Field(ge=0)
    distance_fare: int = Field(ge=0)
    time_fare: int = Field(ge=0)
    surge_charge: int = Field(ge=0)
    convenience_fee: int = Field(ge=0)
    taxes: int = Field(ge=0)
    total: int = Field(ge=0)


class FareEstimate(BaseModel):
    base_price: int
    estimated_price: int
    currency: str
    surge_multiplier: float = Field(ge=1.0)
    surge_reason: str | None = None
    distance_km: float
    duration_mins: int
    breakdown: FareBreakdown


class FareCalculator:
    """Calculates ride fares from distance, duration, vehicle type and surge."""

    def __init__(self, settings: PricingSettings | None = None):
        self.settings = settings or PricingSettings()

    def calculate(
        self,
        distance_m: float,
        duration_s: float,
        vehicle_type: VehicleType | str = VehicleType.BIKE,
        surge_multiplier: float = 1.0,
        surge_reason: str | None = None,
    ) -> FareEstimate:
        """
        Calculate the fare estimate for a trip.

        Surge scales the metered subtotal only. The convenience fee is added
        after surge and GST is charged on everything.
        """
        if distance_m < 0:
            raise ValidationError("Distance must be non-negative")
        if duration_s < 0:
            raise ValidationError("Duration must be non-negative")
        if surge_multiplier < 1.0:
            raise ValidationError("Surge multiplier must be >= 1.0")

        try:
            rates = VEHICLE_RATES[VehicleType(vehicle_type)]
        except ValueError as e:
            raise ValidationError(f"Unknown vehicle type: {vehicle_type}") from e

        distance_km = distance_m / 1000
        duration_mins = duration_s / 60

        base_fare = rates.base
        distance_fare = distance_km * rates.per_km
        time_fare = duration_mins * rates.per_min

        subtotal = base_fare + distance_fare + time_fare
        surge_charge = subtotal * (surge_multiplier - 1)
        convenience_fee = self.settings.convenience_fee

        taxable_amount = subtotal + surge_charge + convenience_fee
        taxes = taxable_amount * self.settings.tax_rate
        total = taxable_amount + taxes

        return FareEstimate(
            base_price=round_half_up(base_fare),
            estimated_price=round_half_up(total),
            currency=self.settings.currency,
            surge_multiplier=surge_multiplier,
            surge_reason=surge_reason,
            distance_km=round(distance_km, 1),
            duration_mins=round_half_up(duration_mins),
            breakdown=FareBreakdown(
                base_fare=round_half_up(base_fare),
                distance_fare=round_half_up(distance_fare),
                time_fare=round_half_up(time_fare),
                surge_charge=round_half_up(surge_charge),
                convenience_fee=round_half_up(convenience_fee),
                taxes=round_half_up(taxes),
                total=round_half_up(total),
            ),
        )
