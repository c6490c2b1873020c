from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal

from walletbot.core.errors import CollaboratorUnavailable, NotConfiguredError
from walletbot.core.http import ResilientHTTPClient

logger = logging.getLogger(__name__)

BALANCE_OF_SELECTOR = "0x70a08231"
EARNED_SELECTOR = "0x008cc262"


@dataclass(frozen=True)
class TokenBalance:
    raw: int
    amount: Decimal


@dataclass(frozen=True)
class StakingPosition:
    staked: Decimal
    rewards: Decimal


def decode_uint(result) -> int:
    if not isinstance(result, str) or not result.startswith("0x"):
        raise CollaboratorUnavailable("Malformed RPC result.")
    if result == "0x":
        return 0
    try:
        return int(result, 16)
    except ValueError:
        raise CollaboratorUnavailable("Malformed RPC result.") from None


def _call_data(selector: str, address: str) -> str:
    return selector + address.lower().removeprefix("0x").rjust(64, "0")


class ChainReader:
    """Read-only EVM JSON-RPC client with endpoint fallback."""

    def __init__(
        self,
        http: ResilientHTTPClient,
        rpc_urls: list[str],
        token_address: str = "",
        staking_contract_address: str = "",
        token_decimals: int = 18,
        reward_decimals: int = 6,
    ) -> None:
        self.http = http
        self.rpc_urls = rpc_urls
        self.token_address = token_address.strip()
        self.staking_contract_address = staking_contract_address.strip()
        self.token_decimals = token_decimals
        self.reward_decimals = reward_decimals

    @property
    def staking_enabled(self) -> bool:
        return bool(self.staking_contract_address)

    async def _rpc(self, method: str, params: list) -> str:
        for rpc_url in self.rpc_urls:
            try:
                resp = await self.http.post_json(rpc_url, {"jsonrpc": "2.0", "id": 1, "method": method, "params": params})
            except CollaboratorUnavailable as exc:
                logger.warning("rpc_call_failed", extra={"event": "rpc_call_failed", "error": str(exc)})
                continue
            if isinstance(resp, dict) and resp.get("result") is not None:
                return resp["result"]
            logger.warning("rpc_call_empty", extra={"event": "rpc_call_empty", "error": str(resp)[:200]})
        raise CollaboratorUnavailable("Chain RPC unavailable.")

    async def _eth_call(self, to: str, data: str) -> int:
        return decode_uint(await self._rpc("eth_call", [{"to": to, "data": data}, "latest"]))

    async def token_balance(self, address: str) -> TokenBalance:
        if not self.token_address:
            raise NotConfiguredError("Token contract not configured.")
        raw = await self._eth_call(self.token_address, _call_data(BALANCE_OF_SELECTOR, address))
        return TokenBalance(raw=raw, amount=Decimal(raw).scaleb(-self.token_decimals))

    async def staking_position(self, address: str) -> StakingPosition:
        if not self.staking_enabled:
            raise NotConfiguredError("Staking not configured.")
        staked, earned = await asyncio.gather(
            self._eth_call(self.staking_contract_address, _call_data(BALANCE_OF_SELECTOR, address)),
            self._eth_call(self.staking_contract_address, _call_data(EARNED_SELECTOR, address)),
        )
        return StakingPosition(
            staked=Decimal(staked).scaleb(-self.token_decimals),
            rewards=Decimal(earned).scaleb(-self.reward_decimals),
        )

    async def gas_price_gwei(self) -> Decimal:
        wei = decode_uint(await self._rpc("eth_gasPrice", []))
        return Decimal(wei).scaleb(-9)
