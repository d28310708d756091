from __future__ import annotations

import logging
import random
import time
import zlib
from typing import Dict, List, Optional

from ..models import Candle
from ..timeframes import timeframe_ms

log = logging.getLogger("synthetic")

BASE_PRICES: Dict[str, float] = {
    "BTCUSDT": 43000.0,
    "ETHUSDT": 2400.0,
    "BNBUSDT": 320.0,
    "ADAUSDT": 0.35,
    "SOLUSDT": 100.0,
    "DOTUSDT": 5.5,
    "LINKUSDT": 14.0,
    "AVAXUSDT": 25.0,
}
DEFAULT_BASE_PRICE = 100.0


class SyntheticCandleSource:
    """Deterministic random-walk candles, for when live data is unavailable.

    The walk for a (symbol, timeframe) depends only on ``seed`` and the key, so
    repeated fetches line up bar for bar.
    """

    def __init__(self, seed: int = 7, *, volatility: float = 0.02, now_ms: Optional[int] = None):
        self.seed = int(seed)
        self.volatility = float(volatility)
        self._now_ms = now_ms

    def _rng(self, symbol: str, timeframe: str) -> random.Random:
        salt = zlib.crc32(f"{symbol.upper()}:{timeframe}".encode("utf-8"))
        return random.Random(self.seed * 1_000_003 + salt)

    def generate(self, symbol: str, timeframe: str, limit: int) -> List[Candle]:
        step = timeframe_ms(timeframe)
        now_ms = int(time.time() * 1000) if self._now_ms is None else int(self._now_ms)
        # open time of the last fully closed bar
        last_open = (now_ms // step) * step - step

        rng = self._rng(symbol, timeframe)
        price = BASE_PRICES.get(symbol.upper(), DEFAULT_BASE_PRICE)
        out: List[Candle] = []
        for k in range(int(limit)):
            t = last_open - (int(limit) - 1 - k) * step
            o = price
            c = o * (1.0 + (rng.random() - 0.5) * self.volatility)
            rng_pct = o * 0.01 * rng.random()
            out.append(Candle(
                time=t,
                open=o,
                high=max(o, c, o + rng_pct),
                low=min(o, c, o - rng_pct),
                close=c,
                volume=1_000_000 + rng.random() * 5_000_000,
            ))
            price = c
        return out

    async def fetch_candles(self, symbol: str, timeframe: str, limit: int) -> List[Candle]:
        return self.generate(symbol, timeframe, limit)

    async def close(self) -> None:
        return None


class FallbackCandleSource:
    """Primary source first; synthetic data when it fails or comes back too short."""

    def __init__(self, primary, fallback, min_candles: int):
        self.primary = primary
        self.fallback = fallback
        self.min_candles = int(min_candles)

    async def fetch_candles(self, symbol: str, timeframe: str, limit: int) -> List[Candle]:
        try:
            candles = await self.primary.fetch_candles(symbol, timeframe, limit)
        except Exception as e:
            log.warning("primary_failed symbol=%s tf=%s err=%s using=fallback", symbol, timeframe, e)
            return await self.fallback.fetch_candles(symbol, timeframe, limit)

        if len(candles) < self.min_candles:
            log.warning("primary_short symbol=%s tf=%s bars=%d need=%d using=fallback",
                        symbol, timeframe, len(candles), self.min_candles)
            return await self.fallback.fetch_candles(symbol, timeframe, limit)
        return candles

    async def close(self) -> None:
        for src in (self.primary, self.fallback):
            closer = getattr(src, "close", None)
            if closer is not None:
                await closer()
