from datetime import UTC, datetime, timedelta

import pytest
import respx
from httpx import Response

from rideshare.geo import Coordinates
from rideshare.navigation import (
    NavigationRoute,
    NavigationService,
    NavigationStep,
    bearing,
    directions_url,
    format_distance,
    format_duration,
    get_next_instruction,
    is_on_route,
    perpendicular_distance,
    simplify_polyline,
)

BASE = "https://maps.test/maps/api"
# Decodes to (38.5, -120.2), (40.7, -120.95), (43.252, -126.453)
ENCODED = "_p~iF~ps|U_ulLnnqC_mqNvxq`@"
START = Coordinates(lat=38.5, lng=-120.2)
END = Coordinates(lat=43.252, lng=-126.453)


def point(lat: float, lng: float) -> Coordinates:
    return Coordinates(lat=lat, lng=lng)


@pytest.fixture
def directions() -> dict:
    return {
        "status": "OK",
        "routes": [
            {
                "legs": [
                    {
                        "distance": {"value": 90_000},
                        "duration": {"value": 3_600},
                        "steps": [
                            {
                                "html_instructions": "Head <b>north</b>",
                                "distance": {"value": 40_000},
                                "duration": {"value": 1_600},
                                "start_location": {"lat": 38.5, "lng": -120.2},
                                "end_location": {"lat": 40.7, "lng": -120.95},
                            },
                            {
                                "html_instructions": "Turn <b>left</b>",
                                "maneuver": "turn-left",
                                "distance": {"value": 50_000},
                                "duration": {"value": 2_000},
                                "start_location": {"lat": 40.7, "lng": -120.95},
                                "end_location": {"lat": 43.252, "lng": -126.453},
                            },
                        ],
                    }
                ],
                "overview_polyline": {"points": ENCODED},
                "bounds": {
                    "northeast": {"lat": 43.252, "lng": -120.2},
                    "southwest": {"lat": 38.5, "lng": -126.453},
                },
            }
        ],
    }


@pytest.fixture
def navigation(maps_client) -> NavigationService:
    return NavigationService(maps_client)


@pytest.fixture
def route() -> NavigationRoute:
    return NavigationRoute(
        distance_m=300,
        duration_s=60,
        polyline=[point(12.0, 77.0), point(12.001, 77.0), point(12.002, 77.0)],
        steps=[
            NavigationStep(instruction="Head north", distance_m=111, duration_s=20, location=point(12.001, 77.0)),
            NavigationStep(instruction="Arrive", distance_m=111, duration_s=20, location=point(12.002, 77.0)),
        ],
    )


def test_is_on_route_within_tolerance(route: NavigationRoute):
    # ~33 m east of the route
    assert is_on_route(point(12.001, 77.0003), route.polyline)
    # ~110 m east
    assert not is_on_route(point(12.001, 77.001), route.polyline)
    assert is_on_route(point(12.001, 77.001), route.polyline, tolerance_m=150)


def test_is_on_route_accepts_encoded_polyline():
    assert is_on_route(point(40.7, -120.95), ENCODED)
    assert not is_on_route(point(39.0, -120.0), ENCODED)


def test_empty_route_is_never_followed():
    assert not is_on_route(START, [])


def test_next_instruction_skips_reached_steps(route: NavigationRoute):
    assert get_next_instruction(point(12.0, 77.0), route).instruction == "Head north"
    # Standing on the first maneuver point
    assert get_next_instruction(point(12.001, 77.0), route).instruction == "Arrive"
    assert get_next_instruction(point(12.0, 77.0), route.model_copy(update={"steps": []})) is None


@pytest.mark.parametrize(
    ("end", "expected"),
    [((1, 0), 0), ((0, 1), 90), ((-1, 0), 180), ((0, -1), 270)],
)
def test_bearing_cardinal_directions(end, expected):
    assert bearing(point(0, 0), point(*end)) == pytest.approx(expected, abs=1e-9)


def test_perpendicular_distance():
    start, end = point(0, 0), point(0, 1)

    assert perpendicular_distance(point(1, 0.5), start, end) == pytest.approx(1.0)
    # Beyond the segment end: distance to the end point
    assert perpendicular_distance(point(0, 2), start, end) == pytest.approx(1.0)
    # Degenerate segment
    assert perpendicular_distance(point(3, 4), start, start) == pytest.approx(5.0)


def test_simplify_polyline_drops_near_collinear_points():
    line = [point(0, 0), point(0, 0.001), point(0.00005, 0.002), point(0, 0.003)]

    assert simplify_polyline(line) == [line[0], line[-1]]


def test_simplify_polyline_keeps_corners():
    corner = [point(0, 0), point(0, 0.001), point(0, 0.002), point(0.001, 0.002), point(0.002, 0.002)]

    assert simplify_polyline(corner) == [corner[0], corner[2], corner[-1]]


def test_simplify_short_polyline_is_unchanged():
    assert simplify_polyline([START, END]) == [START, END]


@pytest.mark.parametrize(
    ("seconds", "text"),
    [
        (30, "Less than 1 min"),
        (60, "1 min"),
        (600, "10 mins"),
        (3_600, "1 hr"),
        (5_400, "1 hr 30 min"),
        (7_500, "2 hrs 5 min"),
    ],
)
def test_format_duration(seconds, text):
    assert format_duration(seconds) == text


@pytest.mark.parametrize(("meters", "text"), [(0, "0 m"), (999.4, "999 m"), (1_260, "1.3 km"), (12_000, "12.0 km")])
def test_format_distance(meters, text):
    assert format_distance(meters) == text


def test_directions_url():
    assert directions_url(point(12.97, 77.59)) == (
        "https://www.google.com/maps/dir/?api=1&destination=12.97%2C77.59"
    )


async def test_get_route_builds_navigation_steps(navigation: NavigationService, directions: dict):
    async with respx.mock:
        respx.get(f"{BASE}/directions/json").mock(return_value=Response(200, json=directions))

        route = await navigation.get_route(START, END)

    assert route.distance_m == 90_000
    assert len(route.polyline) == 3
    assert [s.instruction for s in route.steps] == ["Head north", "Turn left"]
    assert route.steps[0].location == point(40.7, -120.95)
    assert route.steps[1].maneuver == "turn-left"


async def test_get_route_failure_is_none(navigation: NavigationService):
    async with respx.mock:
        respx.get(f"{BASE}/directions/json").mock(
            return_value=Response(200, json={"status": "ZERO_RESULTS", "routes": []})
        )

        assert await navigation.get_route(START, END) is None


async def test_get_route_without_key_is_none(offline_maps):
    assert await NavigationService(offline_maps).get_route(START, END) is None


async def test_calculate_eta(navigation: NavigationService, directions: dict):
    now = datetime(2026, 3, 1, 8, 0, tzinfo=UTC)
    async with respx.mock:
        respx.get(f"{BASE}/directions/json").mock(return_value=Response(200, json=directions))

        by_route = await navigation.calculate_eta(START, END, now=now)
        # 90 km at 45 km/h
        by_speed = await navigation.calculate_eta(START, END, current_speed_kmh=45, now=now)

    assert by_route.estimated_arrival == now + timedelta(hours=1)
    assert by_route.remaining_distance_m == 90_000
    assert by_speed.remaining_duration_s == pytest.approx(7_200)


async def test_recalculate_keeps_route_while_on_it(navigation: NavigationService, route: NavigationRoute):
    async with respx.mock(assert_all_called=False) as mock:
        kept = await navigation.recalculate_route(point(12.0015, 77.0), END, route)
        assert not mock.calls

    assert kept is route


async def test_recalculate_when_off_route(navigation: NavigationService, route: NavigationRoute, directions: dict):
    async with respx.mock:
        api = respx.get(f"{BASE}/directions/json").mock(return_value=Response(200, json=directions))

        rerouted = await navigation.recalculate_route(START, END, route)

    assert api.called
    assert api.calls.last.request.url.params["origin"] == "38.5,-120.2"
    assert rerouted.distance_m == 90_000
