from .models import (
    PaymentMethod,
    PaymentOrder,
    PaymentReceipt,
    PaymentResult,
    ReceiptData,
    ReceiptFareBreakdown,
    SettlementResult,
    WalletBalance,
    WalletTransaction,
)
from .payment_service import PaymentService
from .receipts import ReceiptService
from .wallet import WalletService

__all__ = [
    "PaymentMethod",
    "PaymentOrder",
    "PaymentReceipt",
    "PaymentResult",
    "PaymentService",
    "ReceiptData",
    "ReceiptFareBreakdown",
    "ReceiptService",
    "SettlementResult",
    "WalletBalance",
    "WalletService",
    "WalletTransaction",
]
