"""Wallet balance lookup (TON via toncenter JSON-RPC)."""

import time
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from tonbridge.logging_config import get_logger, preview
from tonbridge.services.intent_service import ChainType

logger = get_logger("wallet_service")

NANOTONS_PER_TON = 1_000_000_000


@dataclass
class WalletBalance:
    success: bool
    currency_code: str
    balance_amount: float = 0.0
    address: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        """Record stored as conversation context and forwarded to the strategy backend."""
        return {
            "address": self.address,
            "chainType": self.currency_code,
            "balance": self.balance_amount,
            "currency": self.currency_code,
        }


class WalletService:
    def __init__(self, ton_endpoint: str, timeout_seconds: float = 15.0):
        self.ton_endpoint = ton_endpoint
        self.timeout_seconds = timeout_seconds

    async def lookup_balance(self, address: str, chain_type: ChainType) -> WalletBalance:
        if chain_type == ChainType.TON:
            return await self._lookup_ton(address)

        logger.warning(
            "Wallet lookup requested for unsupported chain",
            extra={"context": {"chain_type": chain_type.value, "address": preview(address)}},
        )
        return WalletBalance(
            success=False,
            currency_code=chain_type.value,
            address=address,
            error=f"{chain_type.value} wallet support is not available yet",
        )

    async def _lookup_ton(self, address: str) -> WalletBalance:
        start = time.monotonic()
        request = {
            "id": 1,
            "jsonrpc": "2.0",
            "method": "getAddressInformation",
            "params": {"address": address},
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(self.ton_endpoint, json=request)
                response.raise_for_status()
                data = response.json()
            nanotons = data["result"]["balance"]
            balance = float(nanotons) / NANOTONS_PER_TON
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as exc:
            logger.error(
                "Error fetching TON wallet data",
                extra={
                    "context": {
                        "address": preview(address),
                        "error": str(exc),
                        "elapsed_ms": round((time.monotonic() - start) * 1000, 2),
                    }
                },
            )
            return WalletBalance(success=False, currency_code=ChainType.TON.value, address=address, error=str(exc))

        logger.info(
            "TON wallet data retrieved",
            extra={
                "context": {
                    "address": preview(address),
                    "balance": balance,
                    "elapsed_ms": round((time.monotonic() - start) * 1000, 2),
                }
            },
        )
        return WalletBalance(
            success=True,
            currency_code=ChainType.TON.value,
            balance_amount=balance,
            address=address,
            raw={"balance": str(nanotons)},
        )


def format_wallet_response(balance: WalletBalance) -> str:
    """Balance report that ends with the yes/no strategy question."""
    if balance.balance_amount == 0:
        return (
            f"💳 **Your {balance.currency_code} Wallet Analysis:**\n\n"
            f"💰 Balance: **0 {balance.currency_code}** (Empty wallet)\n\n"
            "💡 **Want personalized investment strategies?**\n"
            "Even with an empty wallet, I can suggest the best entry points and DeFi opportunities.\n\n"
            '**Type "yes" to get tailored investment advice, or "no" if you just want general crypto advice.**'
        )

    amount = f"{balance.balance_amount:.2f}"
    return (
        f"💳 **Your {balance.currency_code} Wallet Analysis:**\n\n"
        f"💰 Balance: **{amount} {balance.currency_code}**\n\n"
        "🚀 **Ready for a personalized investment strategy?**\n"
        f"I can analyze current market trends and suggest optimal moves for your {amount} {balance.currency_code}.\n\n"
        '**Type "yes" to get your custom strategy, or "no" if you just want general crypto advice.**'
    )


def format_wallet_failure(chain_type: ChainType) -> str:
    return (
        f"❌ I detected a {chain_type.value} wallet address but couldn't fetch its data right now. "
        "Let me help you with general crypto questions instead!"
    )
