import pytest

from rideshare.rides import Place, QuickBookRequest, QuickBookService
from tests.factories import BANGALORE

PICKUP = Place(lat=BANGALORE[0], lng=BANGALORE[1], address="Cubbon Park")
DROP = Place(lat=BANGALORE[0] + 0.05, lng=BANGALORE[1] + 0.05, address="Indiranagar")


@pytest.mark.critical
async def test_quick_book_matches_a_driver(
    backend, quick_book_service: QuickBookService, driver_accepts, rows
):
    backend.seed("drivers", rows.driver(), rows.driver(current_lat=BANGALORE[0] + 0.01))

    response = await quick_book_service.quick_book(
        QuickBookRequest(pickup=PICKUP, drop=DROP, vehicle_type="bike"), passenger_id="rider-1"
    )

    assert response.success
    assert response.booking_id
    # ~310 m away at 3 minutes per km
    assert response.estimated_arrival == 1
    [booking] = backend.rows("bookings")
    assert booking["status"] == "accepted"
    assert booking["passenger_id"] == "rider-1"
    assert booking["pickup_location"] == "Cubbon Park"
    assert booking["total_amount"] == response.estimated_fare
    assert booking["fare_breakdown"]["discount"] == 0

    titles = {notification.title for _, notification in driver_accepts}
    assert titles == {"New QuickBook Request"}
    assert len(driver_accepts) == 2


async def test_quick_book_applies_discount(
    backend, quick_book_service: QuickBookService, driver_accepts, rows
):
    backend.seed("drivers", rows.driver())

    response = await quick_book_service.quick_book(
        QuickBookRequest(pickup=PICKUP, drop=DROP, promo_code="WELCOME50", discount_amount=30),
        passenger_id="rider-1",
    )

    [booking] = backend.rows("bookings")
    assert booking["total_amount"] == response.estimated_fare - 30
    assert booking["promo_code"] == "WELCOME50"


async def test_quick_book_notifies_at_most_configured_drivers(
    backend, quick_book_service: QuickBookService, driver_accepts, rows
):
    backend.seed(
        "drivers",
        *[rows.driver(current_lat=BANGALORE[0] + 0.001 * i) for i in range(1, 6)],
    )

    await quick_book_service.quick_book(
        QuickBookRequest(pickup=PICKUP, drop=DROP), passenger_id="rider-1"
    )

    assert len(driver_accepts) == quick_book_service.settings.drivers_to_notify


@pytest.mark.critical
async def test_quick_book_times_out_without_drivers(backend, quick_book_service: QuickBookService):
    response = await quick_book_service.quick_book(
        QuickBookRequest(pickup=PICKUP, drop=DROP), passenger_id="rider-1"
    )

    assert not response.success
    assert response.error == "No drivers accepted your request"
    [booking] = backend.rows("bookings")
    assert booking["status"] == "timeout"


async def test_unanswered_requests_retry_then_fail(backend, quick_book_service: QuickBookService, rows):
    backend.seed("drivers", rows.driver())

    response = await quick_book_service.quick_book(
        QuickBookRequest(pickup=PICKUP, drop=DROP), passenger_id="rider-1"
    )

    assert not response.success
    driver_notifications = [n for n in backend.rows("notifications") if n["title"] == "New QuickBook Request"]
    assert len(driver_notifications) == quick_book_service.settings.max_attempts


async def test_quick_book_requires_user(quick_book_service: QuickBookService):
    response = await quick_book_service.quick_book(QuickBookRequest(pickup=PICKUP, drop=DROP))

    assert response.error == "User not authenticated"


async def test_quick_book_uses_session_user(backend, quick_book_service: QuickBookService):
    backend.auth.user_id = "session-user"

    await quick_book_service.quick_book(QuickBookRequest(pickup=PICKUP, drop=DROP))

    assert backend.rows("bookings")[0]["passenger_id"] == "session-user"


async def test_quick_book_without_known_location(quick_book_service: QuickBookService):
    response = await quick_book_service.quick_book(
        QuickBookRequest(drop=DROP), passenger_id="new-rider"
    )

    assert response.error == "Failed to get current location"


async def test_quick_book_falls_back_to_last_pickup(
    backend, quick_book_service: QuickBookService, rows
):
    backend.seed("bookings", rows.booking(passenger_id="rider-1", status="completed", pickup_lat=12.95))

    await quick_book_service.quick_book(QuickBookRequest(drop=DROP), passenger_id="rider-1")

    latest = backend.rows("bookings")[-1]
    assert latest["pickup_lat"] == 12.95
    assert latest["pickup_location"] == "Current Location"


async def test_wait_for_acceptance_stops_on_cancel(backend, quick_book_service: QuickBookService, rows):
    [booking] = backend.seed("bookings", rows.booking(status="cancelled"))

    assert not await quick_book_service.wait_for_acceptance(booking["id"])


async def test_recent_destinations_are_unique(backend, quick_book_service: QuickBookService, rows):
    for drop in ("Airport", "Office", "Airport", "Home"):
        backend.seed("bookings", rows.booking(passenger_id="rider-1", drop_location=drop))

    destinations = await quick_book_service.get_recent_destinations("rider-1")

    assert [d.drop_location for d in destinations] == ["Home", "Airport", "Office"]


async def test_repeat_last_ride(backend, quick_book_service: QuickBookService, driver_accepts, rows):
    backend.seed("drivers", rows.driver())
    backend.seed(
        "bookings",
        rows.booking(passenger_id="rider-1", status="completed", drop_location="Airport", vehicle_type="bike"),
    )

    response = await quick_book_service.repeat_last_ride("rider-1")

    assert response.success
    assert backend.rows("bookings")[-1]["drop_location"] == "Airport"


async def test_repeat_last_ride_without_history(quick_book_service: QuickBookService):
    response = await quick_book_service.repeat_last_ride("rider-1")

    assert response.error == "No previous rides found"


async def test_wait_for_acceptance_survives_poll_errors(backend, quick_book_service: QuickBookService, rows):
    [booking] = backend.seed("bookings", rows.booking())
    backend.fail("bookings", "select")

    assert not await quick_book_service.wait_for_acceptance(booking["id"])


async def test_quick_book_times_out_when_polling_fails(
    backend, quick_book_service: QuickBookService, rows
):
    backend.seed("drivers", rows.driver())
    backend.fail("bookings", "select")

    response = await quick_book_service.quick_book(
        QuickBookRequest(pickup=PICKUP, drop=DROP), passenger_id="rider-1"
    )

    assert response.error == "No drivers accepted your request"
    [booking] = backend.rows("bookings")
    assert booking["status"] == "timeout"


async def test_repeat_last_ride_with_unknown_vehicle(backend, quick_book_service: QuickBookService, rows):
    backend.seed(
        "bookings",
        rows.booking(passenger_id="rider-1", status="completed", vehicle_type="helicopter"),
    )

    response = await quick_book_service.repeat_last_ride("rider-1")

    assert not response.success
    assert response.error == "Last ride cannot be repeated"
    assert len(backend.rows("bookings")) == 1
