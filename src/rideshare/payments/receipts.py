"""Ride receipts built from booking, payment and tip rows."""

import logging
from datetime import datetime
from html import escape
from typing import TYPE_CHECKING, Any

from rideshare.backend import execute, fetch_first, fetch_rows
from rideshare.core.exceptions import RideshareError
from rideshare.utils.numbers import round_half_up
from rideshare.utils.timestamps import parse_timestamp, utc_now

from .models import ReceiptData, ReceiptFareBreakdown

if TYPE_CHECKING:
    from supabase import AsyncClient

logger = logging.getLogger(__name__)

# Receipt tariff, independent of the quoting rates
RECEIPT_BASE_FARE = 20.0
RECEIPT_PER_KM = 12.0
RECEIPT_PER_MIN = 2.0
RECEIPT_TAX_RATE = 0.05

RECEIPT_CSS = """\
body { font-family: 'Segoe UI', Tahoma, sans-serif; background: #f5f5f5; padding: 20px; }
.receipt { max-width: 600px; margin: 0 auto; background: white; border-radius: 12px; overflow: hidden; }
.header { background: #2563eb; color: white; padding: 30px; text-align: center; }
.receipt-id { display: inline-block; padding: 8px 16px; border-radius: 20px; font-weight: 600; }
.content { padding: 30px; }
.section { margin-bottom: 24px; }
.section-title { font-size: 14px; color: #6b7280; text-transform: uppercase; font-weight: 600; }
.info-row, .fare-row { display: flex; justify-content: space-between; padding: 8px 0; font-size: 14px; }
.location { padding: 12px; background: #f9fafb; border-radius: 8px; margin-bottom: 8px; }
.fare-breakdown { background: #f9fafb; border-radius: 8px; padding: 16px; }
.fare-row.total { border-top: 2px solid #e5e7eb; font-size: 18px; font-weight: 700; }
.fare-row.discount { color: #10b981; }
.fare-row.surge { color: #f59e0b; }
.footer { background: #f9fafb; padding: 20px 30px; text-align: center; color: #6b7280; font-size: 12px; }
@media print { body { background: white; padding: 0; } }"""

BOOKING_WITH_PARTIES = (
    "*, trip:trips(*), "
    "passenger:users!bookings_passenger_id_fkey(*), "
    "driver:users!bookings_driver_id_fkey(*)"
)


def receipt_id_for(booking_id: str) -> str:
    return f"RCP-{booking_id[:8].upper()}"


def _parse_date(value: Any) -> datetime:
    return parse_timestamp(value) if value else utc_now()


class ReceiptService:
    def __init__(self, backend: "AsyncClient", brand: str = "TCSYGO"):
        self.backend = backend
        self.brand = brand

    async def generate_receipt_data(self, booking_id: str) -> ReceiptData | None:
        """Assemble the receipt for a booking, or None when the booking is missing."""
        try:
            booking = await fetch_first(
                self.backend.table("bookings").select(BOOKING_WITH_PARTIES).eq("id", booking_id),
                "fetch booking for receipt",
            )
            if booking is None:
                logger.warning(f"Booking {booking_id} not found for receipt")
                return None

            payment = await fetch_first(
                self.backend.table("payments").select("*").eq("booking_id", booking_id),
                "fetch payment for receipt",
            )
            if payment is None:
                logger.warning("Payment not found, using booking data")

            tip = await fetch_first(
                self.backend.table("driver_tips").select("amount").eq("booking_id", booking_id),
                "fetch tip for receipt",
            )
        except RideshareError as e:
            logger.error(f"Error generating receipt data: {e}")
            return None

        trip = booking.get("trip") or {}
        passenger = booking.get("passenger") or {}
        driver = booking.get("driver") or {}
        payment = payment or {}

        distance_km = float(trip.get("distance") or 0)
        duration_s = float(trip.get("duration") or 0)
        surge_multiplier = float(booking.get("surge_multiplier") or 1.0)

        distance_fare = distance_km * RECEIPT_PER_KM
        time_fare = (duration_s / 60) * RECEIPT_PER_MIN
        metered = RECEIPT_BASE_FARE + distance_fare + time_fare
        surge_charge = metered * (surge_multiplier - 1)
        subtotal = metered + surge_charge
        taxes = subtotal * RECEIPT_TAX_RATE
        discount = float(booking.get("discount_amount") or 0)
        tip_amount = float((tip or {}).get("amount") or 0)
        total = subtotal + taxes - discount + tip_amount

        return ReceiptData(
            id=receipt_id_for(booking_id),
            booking_id=booking_id,
            trip_id=booking.get("trip_id"),
            passenger_name=passenger.get("full_name") or "Passenger",
            driver_name=driver.get("full_name") or "Driver",
            date=_parse_date(booking.get("created_at")),
            pickup_location=booking.get("pickup_location"),
            drop_location=booking.get("drop_location"),
            distance_km=distance_km,
            duration_s=duration_s,
            fare_breakdown=ReceiptFareBreakdown(
                base_fare=round_half_up(RECEIPT_BASE_FARE),
                distance_fare=round_half_up(distance_fare),
                time_fare=round_half_up(time_fare),
                surge_charge=round_half_up(surge_charge),
                taxes=round_half_up(taxes),
                discount=round_half_up(discount),
                tip=tip_amount,
                total=round_half_up(total),
            ),
            payment_method=payment.get("payment_method") or booking.get("payment_method") or "cash",
            transaction_id=payment.get("transaction_id") or payment.get("id") or booking_id,
            vehicle_type=booking.get("vehicle_type") or "bike",
            vehicle_number=trip.get("vehicle_number"),
        )

    def render_text_receipt(self, receipt: ReceiptData) -> str:
        fare = receipt.fare_breakdown
        vehicle = receipt.vehicle_type.upper()
        if receipt.vehicle_number:
            vehicle = f"{vehicle} - {receipt.vehicle_number}"

        lines = [
            f"{self.brand} Ride Receipt",
            f"Receipt: {receipt.id}",
            f"Date: {receipt.date:%d %b %Y, %H:%M}",
            f"Driver: {receipt.driver_name}",
            f"Vehicle: {vehicle}",
            f"From: {receipt.pickup_location or '-'}",
            f"To: {receipt.drop_location or '-'}",
            f"Distance: {receipt.distance_km:.1f} km",
            f"Duration: {round_half_up(receipt.duration_s / 60)} mins",
            "",
            f"Base fare: ₹{fare.base_fare}",
            f"Distance fare: ₹{fare.distance_fare}",
            f"Time fare: ₹{fare.time_fare}",
        ]
        if fare.surge_charge > 0:
            lines.append(f"Surge charge: ₹{fare.surge_charge}")
        lines.append(f"Taxes (GST): ₹{fare.taxes}")
        if fare.discount > 0:
            lines.append(f"Discount: -₹{fare.discount}")
        if fare.tip > 0:
            lines.append(f"Tip: ₹{fare.tip:g}")
        lines += [
            f"Total: ₹{fare.total}",
            "",
            f"Paid via {receipt.payment_method.upper()} (txn {receipt.transaction_id})",
        ]
        return "\n".join(lines)

    def render_html_receipt(self, receipt: ReceiptData) -> str:
        """Standalone HTML page with inline styles, for email and sharing."""
        fare = receipt.fare_breakdown
        vehicle = receipt.vehicle_type.upper()
        if receipt.vehicle_number:
            vehicle = f"{vehicle} - {receipt.vehicle_number}"

        def row(label: str, value: str, css: str = "info-row") -> str:
            return f'<div class="{css}"><span>{label}</span><span>{escape(value)}</span></div>'

        details = [
            row("Date &amp; Time", f"{receipt.date:%d %b %Y, %H:%M}"),
            row("Driver", receipt.driver_name),
            row("Vehicle", vehicle),
            row("Distance", f"{receipt.distance_km:.1f} km"),
            row("Duration", f"{round_half_up(receipt.duration_s / 60)} mins"),
        ]
        charges = [
            row("Base Fare", f"₹{fare.base_fare}", "fare-row"),
            row("Distance Fare", f"₹{fare.distance_fare}", "fare-row"),
            row("Time Fare", f"₹{fare.time_fare}", "fare-row"),
        ]
        if fare.surge_charge > 0:
            charges.append(row("Surge Charge", f"₹{fare.surge_charge}", "fare-row surge"))
        charges.append(row("Taxes (GST)", f"₹{fare.taxes}", "fare-row"))
        if fare.discount > 0:
            charges.append(row("Discount", f"-₹{fare.discount}", "fare-row discount"))
        if fare.tip > 0:
            charges.append(row("Tip", f"₹{fare.tip:g}", "fare-row"))
        charges.append(row("Total", f"₹{fare.total}", "fare-row total"))

        brand = escape(self.brand)
        receipt_id = escape(receipt.id)
        pickup = escape(receipt.pickup_location or "-")
        drop = escape(receipt.drop_location or "-")
        details_html = "".join(details)
        charges_html = "".join(charges)
        payment_html = row("Method", receipt.payment_method.upper()) + row(
            "Transaction ID", receipt.transaction_id
        )
        return f"""<!DOCTYPE html>
<html>
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>{brand} Receipt - {receipt_id}</title>
<style>
{RECEIPT_CSS}
</style>
</head>
<body>
<div class="receipt">
<div class="header"><h1>{brand}</h1><p>Ride Receipt</p><div class="receipt-id">{receipt_id}</div></div>
<div class="content">
<div class="section"><div class="section-title">Trip Details</div>
{details_html}
</div>
<div class="section"><div class="section-title">Route</div>
<div class="location">{pickup}</div>
<div class="location">{drop}</div>
</div>
<div class="section"><div class="section-title">Fare Breakdown</div>
<div class="fare-breakdown">{charges_html}</div>
</div>
<div class="section"><div class="section-title">Payment</div>
{payment_html}
</div>
</div>
<div class="footer"><p>Thank you for riding with {brand}!</p></div>
</div>
</body>
</html>
"""

    async def email_receipt(self, receipt: ReceiptData, email: str) -> bool:
        """Queue the HTML receipt for delivery by the backend mailer."""
        try:
            await execute(
                self.backend.table("email_queue").insert(
                    {
                        "to": email,
                        "subject": f"{self.brand} Receipt - {receipt.id}",
                        "html": self.render_html_receipt(receipt),
                        "type": "receipt",
                        "metadata": {"bookingId": receipt.booking_id},
                    }
                ),
                "queue receipt email",
            )
        except RideshareError as e:
            logger.error(f"Error queueing email: {e}")
            return False
        return True

    async def get_receipt_history(self, user_id: str, limit: int = 20) -> list[ReceiptData]:
        try:
            bookings = await fetch_rows(
                self.backend.table("bookings")
                .select("id")
                .eq("passenger_id", user_id)
                .eq("status", "completed")
                .order("created_at", desc=True)
                .limit(limit),
                "fetch completed bookings",
            )
        except RideshareError as e:
            logger.error(f"Error getting receipt history: {e}")
            return []

        receipts = []
        for booking in bookings:
            receipt = await self.generate_receipt_data(booking["id"])
            if receipt:
                receipts.append(receipt)
        return receipts
