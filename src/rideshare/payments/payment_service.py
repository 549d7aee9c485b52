"""Booking payments through the wallet, cash or the online gateway."""

import hashlib
import hmac
import logging
import time
from typing import TYPE_CHECKING

from pydantic import ValidationError as PydanticValidationError

from rideshare.backend import current_user_id, execute, fetch_first, fetch_rows, invoke_function
from rideshare.core.exceptions import BackendError, ConfigurationError, RideshareError
from rideshare.settings import PaymentSettings
from rideshare.utils.numbers import round_half_up

from .models import (
    ONLINE_METHODS,
    PaymentMethod,
    PaymentOrder,
    PaymentReceipt,
    PaymentResult,
    SettlementResult,
)
from .receipts import ReceiptService
from .wallet import WalletService

if TYPE_CHECKING:
    from supabase import AsyncClient

logger = logging.getLogger(__name__)

SETTLEABLE_STATUSES = ("confirmed", "ongoing")


class PaymentService:
    def __init__(
        self,
        backend: "AsyncClient",
        wallet: WalletService,
        receipts: ReceiptService,
        settings: PaymentSettings | None = None,
        currency: str = "INR",
    ):
        self.backend = backend
        self.wallet = wallet
        self.receipts = receipts
        self.settings = settings or PaymentSettings()
        self.currency = currency

    async def create_order(
        self, amount: float, currency: str | None = None, receipt: str | None = None
    ) -> PaymentOrder:
        """Create a gateway order. ``amount`` is in rupees and sent in paise."""
        body = {
            "amount": round_half_up(amount * 100),
            "currency": currency or self.currency,
            "receipt": receipt or f"receipt_{int(time.time() * 1000)}",
        }
        try:
            data = await invoke_function(self.backend, "create-payment-order", body)
        except BackendError as e:
            logger.error(f"Error creating payment order: {e}")
            raise BackendError(f"Failed to create payment order: {e.message}") from e
        try:
            return PaymentOrder.model_validate(data)
        except PydanticValidationError as e:
            raise BackendError("Failed to create payment order: malformed gateway response") from e

    async def verify_payment(
        self,
        order_id: str,
        payment_id: str,
        signature: str,
        booking_id: str | None = None,
    ) -> bool:
        """Server-side verification of a checkout result."""
        body = {"order_id": order_id, "payment_id": payment_id, "signature": signature}
        if booking_id:
            body["booking_id"] = booking_id
        try:
            data = await invoke_function(self.backend, "verify-payment", body)
        except BackendError as e:
            logger.error(f"Error verifying payment: {e}")
            return False
        return bool(data.get("verified"))

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """Check a checkout signature locally: HMAC-SHA256 of ``order_id|payment_id``."""
        if not self.settings.key_secret:
            raise ConfigurationError("Payment gateway key secret not configured")

        expected = hmac.new(
            self.settings.key_secret.encode(),
            f"{order_id}|{payment_id}".encode(),
            hashlib.sha256,
        ).hexdigest()
        return hmac.compare_digest(expected, signature)

    async def process_payment(
        self,
        booking_id: str,
        amount: float,
        method: PaymentMethod | str,
        user_id: str | None = None,
    ) -> PaymentResult:
        try:
            user_id = user_id or await current_user_id(self.backend)
            if not user_id:
                return PaymentResult(success=False, error="User not authenticated")

            try:
                method = PaymentMethod(method)
            except ValueError:
                return PaymentResult(success=False, error="Invalid payment method")

            if method == PaymentMethod.WALLET:
                return await self._process_wallet_payment(user_id, booking_id, amount)
            if method == PaymentMethod.CASH:
                return await self._process_cash_payment(booking_id)
            if method in ONLINE_METHODS:
                order = await self.create_order(amount, receipt=booking_id)
                return PaymentResult(success=True, order_id=order.id)

            return PaymentResult(success=False, error="Invalid payment method")
        except RideshareError as e:
            logger.error(f"Error processing payment for {booking_id}: {e}")
            return PaymentResult(success=False, error=e.message)

    async def _process_wallet_payment(
        self, user_id: str, booking_id: str, amount: float
    ) -> PaymentResult:
        result = await self.wallet.deduct_from_wallet(user_id, amount, booking_id)
        if not result.success:
            return result

        await execute(
            self.backend.table("bookings")
            .update({"payment_status": "completed", "payment_method": PaymentMethod.WALLET.value})
            .eq("id", booking_id),
            "mark booking paid",
        )
        return result

    async def _process_cash_payment(self, booking_id: str) -> PaymentResult:
        # Cash is collected by the driver, so the booking stays unpaid here
        await execute(
            self.backend.table("bookings")
            .update({"payment_status": "pending", "payment_method": PaymentMethod.CASH.value})
            .eq("id", booking_id),
            "mark booking cash",
        )
        return PaymentResult(success=True, payment_id=f"cash_{booking_id}")

    async def process_auto_pay(self, user_id: str, booking_id: str, amount: float) -> PaymentResult:
        try:
            settings = await fetch_first(
                self.backend.table("auto_pay_settings").select("*").eq("user_id", user_id),
                "fetch auto-pay settings",
            )
        except RideshareError as e:
            logger.error(f"Error processing auto-pay: {e}")
            return PaymentResult(success=False, error=e.message)

        if not settings or not settings.get("enabled"):
            return PaymentResult(success=False, error="Auto-pay not enabled")

        limit = settings.get("spending_limit")
        if limit and amount > float(limit):
            return PaymentResult(success=False, error="Amount exceeds spending limit")

        return await self.process_payment(
            booking_id, amount, settings.get("default_payment_method") or "", user_id=user_id
        )

    async def settle_trip_payments(self, trip_id: str) -> SettlementResult:
        """Charge every open booking on a finished trip through auto-pay."""
        try:
            bookings = await fetch_rows(
                self.backend.table("bookings")
                .select("*")
                .eq("trip_id", trip_id)
                .in_("status", list(SETTLEABLE_STATUSES)),
                "fetch trip bookings",
            )
        except RideshareError as e:
            logger.error(f"Error settling trip payments: {e}")
            return SettlementResult()

        result = SettlementResult()
        for booking in bookings:
            if booking.get("payment_status") == "completed":
                result.settled += 1
                continue

            payment = await self.process_auto_pay(
                booking["passenger_id"], booking["id"], float(booking.get("total_amount") or 0)
            )
            if payment.success:
                result.settled += 1
            else:
                logger.warning(f"Auto-pay failed for booking {booking['id']}: {payment.error}")
                result.failed += 1

        logger.info(f"Trip {trip_id} settled={result.settled} failed={result.failed}")
        return result

    async def process_tip(
        self,
        booking_id: str,
        driver_id: str,
        amount: float,
        method: PaymentMethod | str,
        user_id: str | None = None,
    ) -> PaymentResult:
        try:
            user_id = user_id or await current_user_id(self.backend)
            if not user_id:
                return PaymentResult(success=False, error="User not authenticated")

            result = await self.process_payment(f"tip_{booking_id}", amount, method, user_id=user_id)
            if not result.success:
                return result

            await execute(
                self.backend.table("driver_tips").insert(
                    {
                        "booking_id": booking_id,
                        "driver_id": driver_id,
                        "passenger_id": user_id,
                        "amount": amount,
                        "payment_method": str(method),
                        "payment_status": "completed",
                    }
                ),
                "record tip",
            )
        except RideshareError as e:
            logger.error(f"Error processing tip: {e}")
            return PaymentResult(success=False, error=e.message)

        return PaymentResult(success=True, payment_id=result.payment_id)

    async def generate_receipt(self, booking_id: str) -> PaymentReceipt | None:
        data = await self.receipts.generate_receipt_data(booking_id)
        if data is None:
            return None

        return PaymentReceipt(
            id=data.transaction_id,
            booking_id=booking_id,
            amount=max(data.fare_breakdown.total, 0),
            payment_method=data.payment_method,
            transaction_id=data.transaction_id,
            fare_breakdown=data.fare_breakdown,
            created_at=data.date,
        )
