import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from rideshare.backend import execute, fetch_first, fetch_rows, subscribe_to_changes
from rideshare.backend.client import Unsubscribe
from rideshare.core.exceptions import RideshareError

from .models import PaymentResult, WalletBalance, WalletTransaction

if TYPE_CHECKING:
    from supabase import AsyncClient

logger = logging.getLogger(__name__)

WALLETS_TABLE = "wallets"
TRANSACTIONS_TABLE = "wallet_transactions"


class WalletService:
    """Prepaid wallet balances and their transaction ledger."""

    def __init__(self, backend: "AsyncClient", currency: str = "INR"):
        self.backend = backend
        self.currency = currency

    async def _find_wallet(self, user_id: str) -> dict[str, Any] | None:
        return await fetch_first(
            self.backend.table(WALLETS_TABLE).select("*").eq("user_id", user_id),
            "fetch wallet",
        )

    async def _get_or_create_wallet(self, user_id: str) -> dict[str, Any]:
        wallet = await self._find_wallet(user_id)
        if wallet is not None:
            return wallet

        rows = await fetch_rows(
            self.backend.table(WALLETS_TABLE).insert(
                {"user_id": user_id, "balance": 0, "currency": self.currency}
            ),
            "create wallet",
        )
        logger.info(f"Created wallet for user {user_id}")
        return rows[0] if rows else {"user_id": user_id, "balance": 0, "currency": self.currency}

    async def _record_transaction(
        self,
        wallet_id: str,
        kind: str,
        amount: float,
        description: str,
        reference_id: str,
    ) -> dict[str, Any] | None:
        rows = await fetch_rows(
            self.backend.table(TRANSACTIONS_TABLE).insert(
                {
                    "wallet_id": wallet_id,
                    "type": kind,
                    "amount": amount,
                    "description": description,
                    "status": "completed",
                    "reference_id": reference_id,
                }
            ),
            f"record {kind} transaction",
        )
        return rows[0] if rows else None

    async def get_wallet_balance(self, user_id: str) -> WalletBalance:
        """Balance of the user's wallet, creating an empty wallet on first use."""
        wallet = await self._get_or_create_wallet(user_id)
        return WalletBalance(
            balance=float(wallet.get("balance") or 0),
            currency=wallet.get("currency") or self.currency,
        )

    async def add_money_to_wallet(
        self,
        user_id: str,
        amount: float,
        reference_id: str,
        description: str = "Added money to wallet",
    ) -> bool:
        try:
            wallet = await self._get_or_create_wallet(user_id)
            new_balance = float(wallet.get("balance") or 0) + amount
            await execute(
                self.backend.table(WALLETS_TABLE)
                .update({"balance": new_balance})
                .eq("id", wallet["id"]),
                "credit wallet",
            )
            await self._record_transaction(wallet["id"], "credit", amount, description, reference_id)
        except RideshareError as e:
            logger.error(f"Error adding money to wallet: {e}")
            return False

        logger.info(f"Credited {amount} to wallet of user {user_id} ({reference_id})")
        return True

    async def deduct_from_wallet(
        self,
        user_id: str,
        amount: float,
        reference_id: str,
        description: str | None = None,
    ) -> PaymentResult:
        try:
            wallet = await self._find_wallet(user_id)
            if wallet is None:
                return PaymentResult(success=False, error="Wallet not found")

            balance = float(wallet.get("balance") or 0)
            if balance < amount:
                return PaymentResult(success=False, error="Insufficient wallet balance")

            await execute(
                self.backend.table(WALLETS_TABLE)
                .update({"balance": balance - amount})
                .eq("id", wallet["id"]),
                "debit wallet",
            )
            transaction = await self._record_transaction(
                wallet["id"],
                "debit",
                amount,
                description or f"Payment for booking {reference_id}",
                reference_id,
            )
        except RideshareError as e:
            logger.error(f"Error processing wallet payment: {e}")
            return PaymentResult(success=False, error=e.message)

        return PaymentResult(success=True, payment_id=transaction["id"] if transaction else None)

    async def get_wallet_transactions(
        self, user_id: str, limit: int = 50, offset: int = 0
    ) -> list[WalletTransaction]:
        try:
            rows = await fetch_rows(
                self.backend.table(TRANSACTIONS_TABLE)
                .select("*, wallets!inner(*)")
                .eq("wallets.user_id", user_id)
                .order("created_at", desc=True)
                .range(offset, offset + limit - 1),
                "fetch wallet transactions",
            )
        except RideshareError as e:
            logger.error(f"Error getting wallet transactions: {e}")
            return []
        return [WalletTransaction.model_validate(row) for row in rows]

    async def subscribe_to_balance(
        self, user_id: str, on_update: Callable[[WalletBalance], Any]
    ) -> Unsubscribe:
        def _on_row(row: dict[str, Any]) -> None:
            on_update(
                WalletBalance(
                    balance=float(row.get("balance") or 0),
                    currency=row.get("currency") or self.currency,
                )
            )

        return await subscribe_to_changes(
            self.backend,
            f"wallet:{user_id}",
            WALLETS_TABLE,
            _on_row,
            row_filter=f"user_id=eq.{user_id}",
        )
