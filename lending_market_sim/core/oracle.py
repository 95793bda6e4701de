#!/usr/bin/env python3
"""
Price Oracle Interface

Prices at 10^8 scale with a confidence interval and publish time. Reads are
fail-closed: a missing or stale quote raises instead of returning old data.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

from .errors import ErrorCode, OracleError
from .math import PRICE_SCALE


@dataclass
class PriceQuote:
    """Single oracle observation"""
    price: int
    confidence: int
    publish_time: int


class PriceOracle(ABC):
    """Source of price quotes for the market asset and every collateral"""

    @abstractmethod
    def get_quote(self, asset: str) -> Optional[PriceQuote]:
        pass

    def read_price(self, asset: str, now: int, max_staleness: int) -> int:
        """Price for `asset`, rejecting quotes older than `max_staleness` seconds"""
        quote = self.get_quote(asset)
        if quote is None:
            raise OracleError(ErrorCode.PRICE_UNAVAILABLE, f"No price for {asset}")
        if now - quote.publish_time > max_staleness:
            raise OracleError(
                ErrorCode.STALE_PRICE,
                f"{asset} price published at {quote.publish_time} is stale at {now}"
            )
        return quote.price


class ManualPriceFeed(PriceOracle):
    """In-memory feed updated by scenarios and tests"""

    def __init__(self):
        self.quotes: Dict[str, PriceQuote] = {}

    def get_quote(self, asset: str) -> Optional[PriceQuote]:
        return self.quotes.get(asset)

    def set_price(self, asset: str, price: int, publish_time: int, confidence: int = 0):
        self.quotes[asset] = PriceQuote(price, confidence, publish_time)

    def set_usd_price(self, asset: str, usd_price: float, publish_time: int):
        """Convenience for whole-dollar scenario prices"""
        self.set_price(asset, int(round(usd_price * PRICE_SCALE)), publish_time)

    def apply_price_shock(self, shocks: Dict[str, float], publish_time: int):
        """Apply relative price shocks, e.g. {"BTC": -0.35}"""
        for asset, shock_pct in shocks.items():
            quote = self.quotes.get(asset)
            if quote is None:
                continue
            shocked = max(int(quote.price * (1 + shock_pct)), 0)
            self.quotes[asset] = PriceQuote(shocked, quote.confidence, publish_time)
