"""Zone and time-of-day surge pricing.

Surge zones are polygons stored in ``surge_pricing_zones``. A pickup inside
an active zone takes that zone's multiplier; otherwise the multiplier comes
from the local time of day.
"""

import logging
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

from rideshare.backend import execute, fetch_count, fetch_rows
from rideshare.core.exceptions import RideshareError
from rideshare.geo import point_in_polygon

if TYPE_CHECKING:
    from supabase import AsyncClient

logger = logging.getLogger(__name__)

SURGE_ZONES_TABLE = "surge_pricing_zones"

# Bookings counted as open demand when computing the dynamic multiplier
DEMAND_STATUSES = ("pending", "accepted", "started")
DEMAND_WINDOW = timedelta(minutes=30)


class DemandLevel(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"


class SurgeQuote(BaseModel):
    multiplier: float = Field(ge=1.0)
    reason: str = ""
    zone_id: str | None = None
    zone_name: str | None = None


class SurgeZone(BaseModel):
    id: str
    zone_name: str
    current_multiplier: float
    demand_level: DemandLevel
    is_active: bool = True
    coordinates: list[dict[str, float]]


def time_based_surge(local_time: datetime) -> SurgeQuote:
    """Surge from the hour and weekday alone. Peak windows win over weekends."""
    hour = local_time.hour

    if 8 <= hour < 10:
        return SurgeQuote(multiplier=1.5, reason="Morning Peak Hours")
    if 17 <= hour < 20:
        return SurgeQuote(multiplier=1.6, reason="Evening Peak Hours")
    if hour >= 23 or hour < 5:
        return SurgeQuote(multiplier=1.3, reason="Late Night Hours")
    if local_time.weekday() >= 5:
        return SurgeQuote(multiplier=1.2, reason="Weekend")

    return SurgeQuote(multiplier=1.0, reason="")


def demand_multiplier(demand: int, supply: int) -> float:
    """Map an open-bookings to available-drivers ratio onto a multiplier."""
    if supply == 0:
        return 2.0

    ratio = demand / supply
    if ratio >= 3:
        return 2.0
    if ratio >= 2:
        return 1.8
    if ratio >= 1.5:
        return 1.5
    if ratio >= 1:
        return 1.3
    if ratio >= 0.5:
        return 1.1
    return 1.0


def _zone_reason(zone: dict[str, Any]) -> str:
    level = str(zone.get("demand_level") or "")
    return f"{level[:1].upper()}{level[1:]} Demand in {zone.get('zone_name')}"


class SurgePricingService:
    def __init__(self, backend: "AsyncClient", timezone: str = "Asia/Kolkata"):
        self.backend = backend
        self.tz = ZoneInfo(timezone)

    def _local(self, now: datetime | None) -> datetime:
        if now is None:
            return datetime.now(self.tz)
        if now.tzinfo is None:
            return now.replace(tzinfo=self.tz)
        return now.astimezone(self.tz)

    def _active_zones_query(self) -> Any:
        return (
            self.backend.table(SURGE_ZONES_TABLE)
            .select("*")
            .eq("is_active", True)
            .order("current_multiplier", desc=True)
        )

    async def get_surge_multiplier(
        self, lat: float, lng: float, now: datetime | None = None
    ) -> SurgeQuote:
        """Surge for a pickup point: the highest active zone containing it,
        otherwise the time-based surge."""
        try:
            zones = await fetch_rows(self._active_zones_query(), "fetch surge zones")
        except RideshareError as e:
            logger.error(f"Error getting surge multiplier: {e}")
            return time_based_surge(self._local(now))

        for zone in zones:
            if point_in_polygon(lat, lng, zone.get("coordinates") or []):
                multiplier = zone.get("current_multiplier")
                if multiplier is None or multiplier < 1.0:
                    logger.warning(
                        f"Surge zone {zone.get('id')} has multiplier {multiplier}, using 1.0"
                    )
                    multiplier = 1.0
                return SurgeQuote(
                    multiplier=multiplier,
                    reason=_zone_reason(zone),
                    zone_id=zone["id"],
                    zone_name=zone["zone_name"],
                )

        return time_based_surge(self._local(now))

    def time_based_surge(self, now: datetime | None = None) -> SurgeQuote:
        return time_based_surge(self._local(now))

    async def calculate_dynamic_surge(self, now: datetime | None = None) -> float:
        """Demand/supply multiplier from recent open bookings and free drivers."""
        since = (now or datetime.now(UTC)) - DEMAND_WINDOW
        try:
            demand = await fetch_count(
                self.backend.table("bookings")
                .select("id", count="exact")
                .in_("status", list(DEMAND_STATUSES))
                .gte("created_at", since.isoformat()),
                "count open bookings",
            )
            supply = await fetch_count(
                self.backend.table("drivers")
                .select("id", count="exact")
                .eq("is_available", True)
                .eq("verification_status", "verified"),
                "count available drivers",
            )
        except RideshareError as e:
            logger.error(f"Error calculating dynamic surge: {e}")
            return 1.0

        multiplier = demand_multiplier(demand, supply)
        logger.debug(f"Dynamic surge demand={demand} supply={supply} multiplier={multiplier}")
        return multiplier

    async def get_active_surge_zones(self) -> list[SurgeZone]:
        try:
            rows = await fetch_rows(self._active_zones_query(), "fetch surge zones")
        except RideshareError as e:
            logger.error(f"Error getting active surge zones: {e}")
            return []
        return [SurgeZone.model_validate(row) for row in rows]

    async def create_surge_zone(
        self,
        zone_name: str,
        coordinates: list[dict[str, float]],
        multiplier: float,
        demand_level: DemandLevel,
    ) -> str | None:
        try:
            rows = await fetch_rows(
                self.backend.table(SURGE_ZONES_TABLE).insert(
                    {
                        "zone_name": zone_name,
                        "coordinates": coordinates,
                        "current_multiplier": multiplier,
                        "demand_level": DemandLevel(demand_level).value,
                        "is_active": True,
                    }
                ),
                "create surge zone",
            )
        except RideshareError as e:
            logger.error(f"Error creating surge zone: {e}")
            return None
        return rows[0]["id"] if rows else None

    async def update_surge_zone(
        self, zone_id: str, multiplier: float, demand_level: DemandLevel
    ) -> bool:
        try:
            await execute(
                self.backend.table(SURGE_ZONES_TABLE)
                .update(
                    {
                        "current_multiplier": multiplier,
                        "demand_level": DemandLevel(demand_level).value,
                        "updated_at": datetime.now(UTC).isoformat(),
                    }
                )
                .eq("id", zone_id),
                "update surge zone",
            )
        except RideshareError as e:
            logger.error(f"Error updating surge zone: {e}")
            return False
        return True

    async def deactivate_surge_zone(self, zone_id: str) -> bool:
        try:
            await execute(
                self.backend.table(SURGE_ZONES_TABLE).update({"is_active": False}).eq("id", zone_id),
                "deactivate surge zone",
            )
        except RideshareError as e:
            logger.error(f"Error deactivating surge zone: {e}")
            return False
        return True
