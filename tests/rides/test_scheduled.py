from datetime import UTC, datetime, timedelta

import pytest

from rideshare.rides import Place, QuickBookService, ScheduledRideManager, ScheduledRideStatus
from tests.factories import BANGALORE

NOW = datetime(2026, 3, 1, 8, 0, tzinfo=UTC)
PICKUP = Place(lat=BANGALORE[0], lng=BANGALORE[1], address="Cubbon Park")
DROP = Place(lat=BANGALORE[0] + 0.05, lng=BANGALORE[1] + 0.05, address="Airport Road")


@pytest.fixture
def manager(backend, quick_book_service: QuickBookService, notifications) -> ScheduledRideManager:
    return ScheduledRideManager(backend, quick_book_service, notifications)


def _scheduled_row(user_id: str, at: datetime, **overrides) -> dict:
    return {
        "user_id": user_id,
        "pickup_location": PICKUP.address,
        "pickup_lat": PICKUP.lat,
        "pickup_lng": PICKUP.lng,
        "drop_location": DROP.address,
        "drop_lat": DROP.lat,
        "drop_lng": DROP.lng,
        "scheduled_time": at.isoformat(),
        "vehicle_type": "bike",
        "status": "pending",
        **overrides,
    }


async def test_schedule_ride_queues_reminders(backend, manager: ScheduledRideManager):
    pickup_time = NOW + timedelta(hours=3)

    ride_id = await manager.schedule_ride("rider-1", PICKUP, DROP, pickup_time, now=NOW)

    [ride] = backend.rows("scheduled_rides")
    assert ride["id"] == ride_id
    assert ride["status"] == "pending"
    reminders = backend.rows("notifications")
    assert [r["scheduled_for"] for r in reminders] == [
        (pickup_time - timedelta(hours=1)).isoformat(),
        (pickup_time - timedelta(minutes=15)).isoformat(),
    ]
    assert reminders[0]["data"] == {"rideId": ride_id, "type": "reminder"}


async def test_reminders_in_the_past_are_skipped(backend, manager: ScheduledRideManager):
    await manager.schedule_ride("rider-1", PICKUP, DROP, NOW + timedelta(minutes=30), now=NOW)

    [reminder] = backend.rows("notifications")
    assert reminder["title"] == "Ride Starting Soon"


async def test_schedule_failure_returns_none(backend, manager: ScheduledRideManager):
    backend.fail("scheduled_rides", "insert")

    assert await manager.schedule_ride("rider-1", PICKUP, DROP, NOW + timedelta(hours=3), now=NOW) is None


async def test_user_scheduled_rides_are_pending_and_ordered(backend, manager: ScheduledRideManager):
    backend.seed(
        "scheduled_rides",
        _scheduled_row("rider-1", NOW + timedelta(hours=5)),
        _scheduled_row("rider-1", NOW + timedelta(hours=2)),
        _scheduled_row("rider-1", NOW + timedelta(hours=1), status="cancelled"),
        _scheduled_row("rider-2", NOW + timedelta(hours=1)),
    )

    rides = await manager.get_user_scheduled_rides("rider-1")

    assert [r.scheduled_time for r in rides] == [NOW + timedelta(hours=2), NOW + timedelta(hours=5)]
    assert rides[0].pickup == PICKUP


async def test_cancel_scheduled_ride(backend, manager: ScheduledRideManager):
    [row] = backend.seed("scheduled_rides", _scheduled_row("rider-1", NOW + timedelta(hours=2)))

    assert await manager.cancel_scheduled_ride(row["id"])
    assert backend.rows("scheduled_rides")[0]["status"] == "cancelled"
    assert not await manager.cancel_scheduled_ride("missing")


@pytest.mark.critical
async def test_check_pending_rides_books_and_expires(
    backend, manager: ScheduledRideManager, driver_accepts, rows
):
    backend.seed("drivers", rows.driver())
    due, stale, grace, later = backend.seed(
        "scheduled_rides",
        _scheduled_row("rider-1", NOW + timedelta(minutes=10)),
        _scheduled_row("rider-2", NOW - timedelta(hours=2)),
        _scheduled_row("rider-3", NOW - timedelta(minutes=30)),
        _scheduled_row("rider-4", NOW + timedelta(hours=3)),
    )

    counts = await manager.check_pending_rides(NOW)

    assert counts == {"booked": 1, "expired": 1}
    statuses = {row["id"]: row["status"] for row in backend.rows("scheduled_rides")}
    assert statuses[due["id"]] == ScheduledRideStatus.BOOKED
    assert statuses[stale["id"]] == ScheduledRideStatus.CANCELLED
    assert statuses[grace["id"]] == ScheduledRideStatus.PENDING
    assert statuses[later["id"]] == ScheduledRideStatus.PENDING

    booked = next(row for row in backend.rows("scheduled_rides") if row["id"] == due["id"])
    assert booked["booking_id"] == backend.rows("bookings")[0]["id"]
    assert ("rider-1", "Ride Booked!") in [(user, n.title) for user, n in driver_accepts]


async def test_unmatched_scheduled_ride_stays_pending(backend, manager: ScheduledRideManager):
    [due] = backend.seed("scheduled_rides", _scheduled_row("rider-1", NOW + timedelta(minutes=5)))

    counts = await manager.check_pending_rides(NOW)

    assert counts == {"booked": 0, "expired": 0}
    assert backend.rows("scheduled_rides")[0]["status"] == "pending"


async def test_cleanup_old_rides(backend, manager: ScheduledRideManager):
    backend.seed(
        "scheduled_rides",
        _scheduled_row("rider-1", NOW - timedelta(days=45), status="booked"),
        _scheduled_row("rider-1", NOW - timedelta(days=5), status="booked"),
    )

    assert await manager.cleanup_old_rides(NOW) == 1
    assert len(backend.rows("scheduled_rides")) == 1
