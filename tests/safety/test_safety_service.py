from datetime import UTC, datetime, timedelta

import pytest

from rideshare.geo import Coordinates
from rideshare.safety import SAFETY_TIPS, CheckInStatus, DriverVerification, EmergencyContact, SafetyService

NOW = datetime(2026, 3, 1, 20, 0, tzinfo=UTC)
HERE = Coordinates(lat=12.9716, lng=77.5946)


@pytest.fixture
def safety(backend) -> SafetyService:
    return SafetyService(backend, share_base_url="https://share.test/")


@pytest.fixture
def rider(backend, rows):
    [user] = backend.seed("users", rows.user(id="rider-1", full_name="Meera Iyer"))
    return user


@pytest.fixture
def contact_user(backend, rows, rider):
    """A primary contact who also has an account."""
    [user] = backend.seed("users", rows.user(id="friend-1", phone="+919800000001"))
    backend.seed(
        "emergency_contacts",
        rows.emergency_contact(rider["id"], phone=user["phone"], is_primary=True),
        rows.emergency_contact(rider["id"], phone="+919800000002"),
    )
    return user


def notifications_for(backend, user_id):
    return [n for n in backend.rows("notifications") if n["user_id"] == user_id]


async def test_safe_check_in(backend, safety, rider):
    assert await safety.create_safety_check_in("booking-1", rider["id"], CheckInStatus.SAFE, HERE)

    [check_in] = backend.rows("safety_checkins")
    assert check_in["status"] == "safe"
    assert (check_in["location_lat"], check_in["location_lng"]) == (HERE.lat, HERE.lng)
    assert backend.rows("emergency_alerts") == []


@pytest.mark.critical
async def test_need_help_triggers_emergency(backend, safety, rider, contact_user):
    assert await safety.create_safety_check_in("booking-1", rider["id"], "need_help", HERE)

    [alert] = backend.rows("emergency_alerts")
    assert alert["alert_type"] == "safety_concern"
    assert alert["status"] == "active"

    [alerted] = notifications_for(backend, contact_user["id"])
    assert alerted["type"] == "emergency"
    assert "Meera Iyer" in alerted["message"]
    assert "https://maps.google.com/?q=12.9716,77.5946" in alerted["message"]

    [admin] = notifications_for(backend, "admin")
    assert admin["data"] == {"booking_id": "booking-1", "alert_id": alert["id"]}


async def test_check_in_failure(backend, safety, rider):
    backend.fail("safety_checkins", "insert")

    assert not await safety.create_safety_check_in("booking-1", rider["id"], "safe")


async def test_repeated_missed_check_ins_escalate(backend, safety, rider):
    assert not await safety.record_missed_check_in("booking-1", rider["id"])
    assert backend.rows("emergency_alerts") == []

    assert await safety.record_missed_check_in("booking-1", rider["id"])
    assert len(backend.rows("emergency_alerts")) == 1


async def test_emergency_protocol_returns_alert_id(backend, safety, rider):
    alert_id = await safety.trigger_emergency_protocol("booking-1", rider["id"])

    assert alert_id == backend.rows("emergency_alerts")[0]["id"]

    backend.fail("emergency_alerts", "insert")
    assert await safety.trigger_emergency_protocol("booking-1", rider["id"]) is None


async def test_only_contacts_with_accounts_are_notified(backend, safety, rider, contact_user):
    assert await safety.notify_emergency_contacts(rider["id"], "booking-1") == 1

    [alerted] = notifications_for(backend, contact_user["id"])
    assert "Current location" not in alerted["message"]


async def test_contact_management(backend, safety, rider):
    contact = EmergencyContact(name="Ravi", phone="+919811111111", relationship="brother", is_primary=True)

    assert await safety.add_emergency_contact(rider["id"], contact)
    [stored] = await safety.get_emergency_contacts(rider["id"])
    assert stored.name == "Ravi"
    assert stored.user_id == rider["id"]

    assert await safety.update_emergency_contact(stored.id, {"phone": "+919822222222", "user_id": "other"})
    [updated] = await safety.get_emergency_contacts(rider["id"])
    assert updated.phone == "+919822222222"
    assert updated.user_id == rider["id"]

    assert await safety.delete_emergency_contact(stored.id)
    assert await safety.get_emergency_contacts(rider["id"]) == []
    assert backend.rows("emergency_contacts")[0]["is_active"] is False


async def test_primary_contacts_come_first(backend, safety, rows, rider):
    backend.seed(
        "emergency_contacts",
        rows.emergency_contact(rider["id"], name="Second"),
        rows.emergency_contact(rider["id"], name="First", is_primary=True),
    )

    contacts = await safety.get_emergency_contacts(rider["id"])

    assert [c.name for c in contacts] == ["First", "Second"]


async def test_trip_share_link_expires(backend, safety, rider):
    link = await safety.create_trip_share_link("booking-1", rider["id"], now=NOW)

    assert link.startswith("https://share.test/track/booking-1_")
    token = link.rsplit("/", 1)[1]
    assert backend.rows("trip_shares")[0]["share_token"] == token

    details = await safety.get_trip_share_details(token, now=NOW + timedelta(hours=23))
    assert details["booking_id"] == "booking-1"
    assert await safety.get_trip_share_details(token, now=NOW + timedelta(hours=25)) is None
    assert await safety.get_trip_share_details("unknown", now=NOW) is None


async def test_trip_share_without_expiry_is_expired(backend, safety):
    backend.seed("trip_shares", {"booking_id": "booking-1", "share_token": "tok", "expires_at": None})

    assert await safety.get_trip_share_details("tok", now=NOW) is None


async def test_share_trip_with_primary_contacts(backend, safety, rows, rider, contact_user):
    [other] = backend.seed("users", rows.user(phone="+919800000002"))

    assert await safety.share_trip_with_contacts("booking-1", rider["id"])

    [shared] = notifications_for(backend, contact_user["id"])
    assert shared["type"] == "trip_share"
    assert shared["data"]["link"].startswith("https://share.test/track/")
    assert notifications_for(backend, other["id"]) == []


async def test_share_trip_with_chosen_contacts(backend, safety, rows, rider, contact_user):
    [other] = backend.seed("users", rows.user(phone="+919800000002"))
    secondary = next(c for c in backend.rows("emergency_contacts") if not c["is_primary"])

    assert await safety.share_trip_with_contacts("booking-1", rider["id"], [secondary["id"]])

    assert len(notifications_for(backend, other["id"])) == 1
    assert notifications_for(backend, contact_user["id"]) == []


async def test_failed_driver_verification_alerts_support(backend, safety):
    passed = DriverVerification(photo_match=True, vehicle_match=True, license_plate_match=True)
    failed = DriverVerification(photo_match=True, vehicle_match=True, license_plate_match=False)

    assert await safety.verify_driver("booking-1", "driver-1", passed)
    assert notifications_for(backend, "admin") == []

    assert await safety.verify_driver("booking-1", "driver-1", failed)
    [alert] = notifications_for(backend, "admin")
    assert alert["title"] == "Driver Verification Failed"
    assert alert["data"]["license_plate_match"] is False
    assert len(backend.rows("driver_verifications")) == 2


async def test_report_driver_mismatch(backend, safety):
    assert await safety.report_driver_mismatch("booking-1", "driver-1", "different_person", "Not the pictured driver")

    [report] = backend.rows("driver_mismatch_reports")
    assert report["status"] == "pending"
    [alert] = notifications_for(backend, "admin")
    assert "different_person" in alert["message"]


def test_safety_tips(safety):
    assert safety.get_safety_tips("emergency") == SAFETY_TIPS["emergency"]
    assert safety.get_safety_tips("unknown") == []
