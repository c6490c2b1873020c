from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from walletbot.core.cache import RedisCache
from walletbot.core.errors import CollaboratorUnavailable, NotConfiguredError
from walletbot.core.http import ResilientHTTPClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceQuote:
    price: Decimal
    change_24h: float
    volume_24h: float
    market_cap: float
    source: str = "dexscreener"

    def to_json(self) -> dict:
        return {
            "price": str(self.price),
            "change_24h": self.change_24h,
            "volume_24h": self.volume_24h,
            "market_cap": self.market_cap,
            "source": self.source,
        }

    @classmethod
    def from_json(cls, payload: dict) -> "PriceQuote":
        return cls(
            price=Decimal(payload["price"]),
            change_24h=float(payload["change_24h"]),
            volume_24h=float(payload["volume_24h"]),
            market_cap=float(payload["market_cap"]),
            source=str(payload.get("source", "cache")),
        )


def _as_float(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError, OverflowError):
        return 0.0


def _as_dict(value) -> dict:
    return value if isinstance(value, dict) else {}


def parse_dexscreener_pairs(data) -> PriceQuote:
    """Pick the most liquid pair from a DexScreener ``/tokens`` response.

    Any response shape other than the documented one raises ``CollaboratorUnavailable``.
    """
    try:
        return _parse_pairs(data)
    except CollaboratorUnavailable:
        raise
    except (AttributeError, TypeError, ValueError, ArithmeticError) as exc:
        raise CollaboratorUnavailable(f"Malformed price feed response: {exc}") from exc


def _parse_pairs(data) -> PriceQuote:
    if not isinstance(data, dict):
        raise CollaboratorUnavailable("Malformed price feed response.")
    pairs = data.get("pairs") or []
    if not isinstance(pairs, list) or not pairs:
        raise CollaboratorUnavailable("No trading pairs for token.")

    pairs = [p for p in pairs if isinstance(p, dict)]
    if not pairs:
        raise CollaboratorUnavailable("Malformed price feed response.")
    best = max(pairs, key=lambda p: _as_float(_as_dict(p.get("liquidity")).get("usd")))

    try:
        price = Decimal(str(best.get("priceUsd")))
    except (InvalidOperation, ValueError):
        raise CollaboratorUnavailable("Price feed returned a non-numeric price.") from None
    if not price.is_finite() or price <= 0:
        raise CollaboratorUnavailable("Price feed returned a non-positive price.")

    return PriceQuote(
        price=price,
        change_24h=_as_float(_as_dict(best.get("priceChange")).get("h24")),
        volume_24h=_as_float(_as_dict(best.get("volume")).get("h24")),
        market_cap=_as_float(best.get("marketCap") or best.get("fdv")),
    )


class PriceFeed:
    def __init__(
        self,
        http: ResilientHTTPClient,
        cache: RedisCache | None,
        dexscreener_base: str,
        token_address: str,
        cache_ttl: int = 15,
    ) -> None:
        self.http = http
        self.cache = cache
        self.dexscreener_base = dexscreener_base.rstrip("/")
        self.token_address = token_address.strip()
        self.cache_ttl = cache_ttl

    async def get_quote(self, fresh: bool = False) -> PriceQuote:
        """Current quote for the configured token.

        ``fresh`` bypasses the short-lived cache; the alert sweep always asks for it.
        """
        if not self.token_address:
            raise NotConfiguredError("Price feed not configured.")

        key = f"price:{self.token_address.lower()}"
        if self.cache is not None and not fresh:
            cached = await self.cache.get_json(key)
            if cached:
                try:
                    return PriceQuote.from_json(cached)
                except (KeyError, TypeError, ValueError, InvalidOperation):
                    logger.warning("price_cache_malformed", extra={"event": "price_cache_malformed"})

        data = await self.http.get_json(f"{self.dexscreener_base}/latest/dex/tokens/{self.token_address}")
        quote = parse_dexscreener_pairs(data)
        if self.cache is not None:
            await self.cache.set_json(key, quote.to_json(), ttl=self.cache_ttl)
        return quote
