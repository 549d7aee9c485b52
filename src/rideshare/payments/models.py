from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class PaymentMethod(StrEnum):
    WALLET = "wallet"
    UPI = "upi"
    CARD = "card"
    CASH = "cash"
    NETBANKING = "netbanking"


ONLINE_METHODS = frozenset({PaymentMethod.UPI, PaymentMethod.CARD, PaymentMethod.NETBANKING})


class PaymentOrder(BaseModel):
    """Gateway order returned by the order edge function. ``amount`` is in paise."""

    model_config = ConfigDict(extra="ignore")

    id: str
    amount: int
    currency: str
    receipt: str
    status: str = "created"


class PaymentResult(BaseModel):
    success: bool
    payment_id: str | None = None
    order_id: str | None = None
    error: str | None = None


class WalletBalance(BaseModel):
    balance: float
    currency: str = "INR"


class WalletTransaction(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    type: str
    amount: float
    description: str | None = None
    status: str
    reference_id: str | None = None
    created_at: datetime | None = None


class SettlementResult(BaseModel):
    settled: int = 0
    failed: int = 0


class ReceiptFareBreakdown(BaseModel):
    base_fare: int
    distance_fare: int
    time_fare: int
    surge_charge: int
    taxes: int
    discount: int
    tip: float = 0
    total: int


class ReceiptData(BaseModel):
    id: str
    booking_id: str
    trip_id: str | None = None
    passenger_name: str
    driver_name: str
    date: datetime
    pickup_location: str | None = None
    drop_location: str | None = None
    distance_km: float = 0
    duration_s: float = 0
    fare_breakdown: ReceiptFareBreakdown
    payment_method: str
    transaction_id: str
    vehicle_type: str = "bike"
    vehicle_number: str | None = None


class PaymentReceipt(BaseModel):
    """Compact receipt attached to a payment."""

    id: str
    booking_id: str
    amount: int = Field(ge=0)
    payment_method: str
    transaction_id: str
    fare_breakdown: ReceiptFareBreakdown
    created_at: datetime
