import logging
import re
import time
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from rideshare.core.exceptions import (
    ConfigurationError,
    MapsApiError,
    NetworkError,
    RideshareError,
    ServiceUnavailableError,
    TransientError,
)
from rideshare.core.retry import RetryConfig, with_retry
from rideshare.geo.distance import haversine_distance_m
from rideshare.geo.models import Coordinates
from rideshare.geo.polygons import decode_polyline
from rideshare.utils.numbers import round_half_up

from .models import (
    DistanceResult,
    EtaResult,
    PlaceDetails,
    PlacePrediction,
    Route,
    RouteBounds,
    RouteStep,
)

logger = logging.getLogger(__name__)

_HTML_TAG = re.compile(r"<[^>]*>")


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After", "")
    return float(value) if value.isdigit() else None


class MapsServiceError(ServiceUnavailableError):
    """Maps was unreachable, over quota (429) or failing (5xx)."""


class MapsTimeoutError(NetworkError):
    """No Maps response within the client timeout."""


def _coordinates(raw: dict[str, Any]) -> Coordinates:
    return Coordinates(lat=raw["lat"], lng=raw["lng"])


def _parse_route(route: dict[str, Any]) -> Route:
    leg = route["legs"][0]
    steps = [
        RouteStep(
            instruction=_HTML_TAG.sub("", step["html_instructions"]),
            distance_m=float(step["distance"]["value"]),
            duration_s=float(step["duration"]["value"]),
            maneuver=step.get("maneuver"),
            start_location=_coordinates(step["start_location"]),
            end_location=_coordinates(step["end_location"]),
        )
        for step in leg["steps"]
    ]
    encoded = route["overview_polyline"]["points"]

    return Route(
        distance_m=float(leg["distance"]["value"]),
        duration_s=float(leg["duration"]["value"]),
        polyline=encoded,
        geometry=decode_polyline(encoded),
        steps=steps,
        bounds=RouteBounds(
            northeast=_coordinates(route["bounds"]["northeast"]),
            southwest=_coordinates(route["bounds"]["southwest"]),
        ),
    )


class GoogleMapsClient:
    """Async client for the Google Maps web services used by the app.

    Distance lookups degrade to a Haversine estimate so fare estimation keeps
    working without a key or during an outage. Every other call needs a key.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://maps.googleapis.com/maps/api",
        timeout: float = 5.0,
        fallback_speed_kmh: float = 30.0,
        retry_config: RetryConfig | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.fallback_speed_kmh = fallback_speed_kmh
        self.retry_config = retry_config or RetryConfig()

    async def _get_json(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}/{endpoint}"
        query = {**params, "key": self.api_key}

        async def _request() -> dict[str, Any]:
            start_time = time.perf_counter()
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, params=query)
            except httpx.TimeoutException as e:
                raise MapsTimeoutError(f"Request timed out after {self.timeout}s") from e
            except httpx.TransportError as e:
                raise MapsServiceError(f"Network error: {e}") from e

            if response.status_code == 429 or response.status_code >= 500:
                raise MapsServiceError(
                    f"Maps server error: {response.status_code}",
                    {"retry_after": _retry_after(response)},
                )

            latency_ms = (time.perf_counter() - start_time) * 1000
            logger.debug(f"Maps {endpoint} answered in {latency_ms:.0f}ms")
            try:
                data = response.json()
            except ValueError as e:
                raise MapsServiceError(f"Maps {endpoint} returned a non-JSON body") from e
            if not isinstance(data, dict):
                raise MapsServiceError(f"Maps {endpoint} returned {type(data).__name__}, not an object")
            return data

        return await with_retry(_request, self.retry_config, operation_name=f"maps {endpoint}")

    def _require_key(self) -> None:
        if not self.api_key:
            raise ConfigurationError("Google Maps API key not configured")

    async def get_distance(
        self, origin: Coordinates, destination: Coordinates
    ) -> DistanceResult:
        """Driving distance and duration from the Distance Matrix API.

        Falls back to the Haversine estimate when the key is missing or the
        API fails.
        """
        if not self.api_key:
            logger.warning("Google Maps API key not configured, using Haversine formula")
            return self.estimate_haversine(origin, destination)

        try:
            data = await self._get_json(
                "distancematrix/json",
                {
                    "origins": origin.as_param(),
                    "destinations": destination.as_param(),
                    "mode": "driving",
                },
            )
            if data.get("status") != "OK":
                raise MapsApiError(
                    f"Distance Matrix API error: {data.get('status')}",
                    status=str(data.get("status")),
                )
            try:
                element = data["rows"][0]["elements"][0]
                if element.get("status") != "OK":
                    raise MapsApiError(
                        f"Distance Matrix element error: {element.get('status')}",
                        status=str(element.get("status")),
                    )
                return DistanceResult(
                    distance_m=float(element["distance"]["value"]),
                    duration_s=float(element["duration"]["value"]),
                    distance_text=element["distance"]["text"],
                    duration_text=element["duration"]["text"],
                )
            except (KeyError, IndexError, TypeError, ValueError) as e:
                raise MapsServiceError(f"Unexpected Distance Matrix response: {e!r}") from e
        except RideshareError as e:
            logger.error(f"Error fetching distance from Google Maps: {e}")
            return self.estimate_haversine(origin, destination)

    def estimate_haversine(
        self, origin: Coordinates, destination: Coordinates
    ) -> DistanceResult:
        distance = haversine_distance_m(origin.lat, origin.lng, destination.lat, destination.lng)
        duration = (distance / 1000) * (3600 / self.fallback_speed_kmh)
        return DistanceResult(
            distance_m=round_half_up(distance),
            duration_s=round_half_up(duration),
            distance_text=f"{distance / 1000:.1f} km",
            duration_text=f"{round_half_up(duration / 60)} mins",
        )

    async def get_route(
        self,
        origin: Coordinates,
        destination: Coordinates,
        waypoints: list[Coordinates] | None = None,
    ) -> Route:
        """Turn-by-turn route from the Directions API."""
        self._require_key()

        params: dict[str, Any] = {
            "origin": origin.as_param(),
            "destination": destination.as_param(),
            "mode": "driving",
        }
        if waypoints:
            params["waypoints"] = "|".join(wp.as_param() for wp in waypoints)

        data = await self._get_json("directions/json", params)
        if data.get("status") != "OK" or not data.get("routes"):
            raise MapsApiError(
                f"Directions API error: {data.get('status')}", status=str(data.get("status"))
            )

        try:
            return _parse_route(data["routes"][0])
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise MapsServiceError(f"Unexpected Directions response: {e!r}") from e

    async def geocode(self, address: str) -> Coordinates | None:
        self._require_key()
        try:
            data = await self._get_json("geocode/json", {"address": address})
        except TransientError as e:
            logger.error(f"Error geocoding address: {e}")
            return None

        if data.get("status") == "OK" and data.get("results"):
            return _coordinates(data["results"][0]["geometry"]["location"])
        return None

    async def reverse_geocode(self, coordinates: Coordinates) -> str | None:
        self._require_key()
        try:
            data = await self._get_json("geocode/json", {"latlng": coordinates.as_param()})
        except TransientError as e:
            logger.error(f"Error reverse geocoding: {e}")
            return None

        if data.get("status") == "OK" and data.get("results"):
            address: str = data["results"][0]["formatted_address"]
            return address
        return None

    async def autocomplete(
        self,
        text: str,
        location: Coordinates | None = None,
        radius_m: int | None = None,
    ) -> list[PlacePrediction]:
        self._require_key()

        params: dict[str, Any] = {"input": text}
        if location:
            params["location"] = location.as_param()
        if radius_m:
            params["radius"] = radius_m

        try:
            data = await self._get_json("place/autocomplete/json", params)
        except TransientError as e:
            logger.error(f"Error fetching place autocomplete: {e}")
            return []

        if data.get("status") != "OK":
            return []

        return [
            PlacePrediction(
                place_id=prediction["place_id"],
                description=prediction["description"],
                main_text=prediction["structured_formatting"]["main_text"],
                secondary_text=prediction["structured_formatting"].get("secondary_text", ""),
            )
            for prediction in data.get("predictions", [])
        ]

    async def place_details(self, place_id: str) -> PlaceDetails | None:
        self._require_key()
        try:
            data = await self._get_json("place/details/json", {"place_id": place_id})
        except TransientError as e:
            logger.error(f"Error fetching place details: {e}")
            return None

        if data.get("status") != "OK":
            return None

        result = data["result"]
        return PlaceDetails(
            place_id=result["place_id"],
            name=result["name"],
            address=result["formatted_address"],
            coordinates=_coordinates(result["geometry"]["location"]),
        )

    async def calculate_eta(
        self,
        current: Coordinates,
        destination: Coordinates,
        now: datetime | None = None,
    ) -> EtaResult:
        result = await self.get_distance(current, destination)
        start = now or datetime.now(UTC)
        return EtaResult(eta=start + timedelta(seconds=result.duration_s), duration_s=result.duration_s)
