from .fare import VEHICLE_RATES, FareBreakdown, FareCalculator, FareEstimate, VehicleRates, VehicleType
from .surge_pricing import (
    DemandLevel,
    SurgePricingService,
    SurgeQuote,
    SurgeZone,
    demand_multiplier,
    time_based_surge,
)

__all__ = [
    "VEHICLE_RATES",
    "DemandLevel",
    "FareBreakdown",
    "FareCalculator",
    "FareEstimate",
    "SurgePricingService",
    "SurgeQuote",
    "SurgeZone",
    "VehicleRates",
    "VehicleType",
    "demand_multiplier",
    "time_based_surge",
]
