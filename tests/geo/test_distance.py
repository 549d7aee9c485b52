import pytest

from rideshare.geo import (
    Coordinates,
    GeofenceRegion,
    bounding_box,
    containing_geofences,
    decode_polyline,
    haversine_distance_km,
    haversine_distance_m,
    is_within_proximity,
    point_in_polygon,
)

MG_ROAD = (12.9756, 77.6066)
KORAMANGALA = (12.9352, 77.6245)

SQUARE = [
    {"lat": 12.90, "lng": 77.55},
    {"lat": 12.90, "lng": 77.65},
    {"lat": 13.00, "lng": 77.65},
    {"lat": 13.00, "lng": 77.55},
]


def test_haversine_known_distance():
    km = haversine_distance_km(*MG_ROAD, *KORAMANGALA)
    assert km == pytest.approx(4.89, abs=0.05)


def test_haversine_zero_for_same_point():
    assert haversine_distance_m(*MG_ROAD, *MG_ROAD) == 0


def test_is_within_proximity():
    assert is_within_proximity(12.9716, 77.5946, 12.9718, 77.5946, threshold_m=50)
    assert not is_within_proximity(*MG_ROAD, *KORAMANGALA, threshold_m=1000)


def test_bounding_box_contains_radius():
    box = bounding_box(12.9716, 77.5946, 10)

    assert box.min_lat < 12.9716 < box.max_lat
    assert box.min_lng < 77.5946 < box.max_lng
    # Longitude span is wider than latitude span away from the equator
    assert (box.max_lng - box.min_lng) > (box.max_lat - box.min_lat)
    north_edge_km = haversine_distance_km(12.9716, 77.5946, box.max_lat, 77.5946)
    assert north_edge_km == pytest.approx(10, rel=0.01)


def test_point_in_polygon():
    assert point_in_polygon(12.95, 77.60, SQUARE)
    assert not point_in_polygon(13.10, 77.60, SQUARE)


def test_degenerate_polygon_contains_nothing():
    assert not point_in_polygon(12.95, 77.60, SQUARE[:2])


def test_decode_polyline():
    coords = decode_polyline("_p~iF~ps|U_ulLnnqC_mqNvxq`@")

    assert coords[0] == Coordinates(lat=38.5, lng=-120.2)
    assert len(coords) == 3


def test_containing_geofences():
    airport = GeofenceRegion(
        identifier="airport", center=Coordinates(lat=13.1986, lng=77.7066), radius_m=2000
    )
    station = GeofenceRegion(
        identifier="station", center=Coordinates(lat=12.9781, lng=77.5695), radius_m=500
    )

    inside = containing_geofences(Coordinates(lat=12.9785, lng=77.5700), [airport, station])

    assert [region.identifier for region in inside] == ["station"]
