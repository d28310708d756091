"""Pure indicator functions over closes or candles.

Every series function returns one value per input bar. ``None`` marks bars
without enough history; degenerate inputs (flat ranges, zero true range,
non-positive prices) map to neutral values instead of raising or producing
NaN/inf.

Smoothing: ATR, +DM, -DM, TR and ADX all use Wilder's RMA seeded with the SMA
of the first full window. Price EMAs are seeded with the first value unless
``seed="sma"`` is requested.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence
import math

from .models import Candle

ANNUALIZATION_DAYS = 252


def ema_next(prev_ema: Optional[float], x: float, length: int) -> float:
    if length <= 1:
        return x
    alpha = 2.0 / (length + 1.0)
    return x if prev_ema is None else (alpha * x + (1.0 - alpha) * prev_ema)


def rma_next(prev: Optional[float], x: float, length: int) -> float:
    """Wilder's RMA step."""
    if length <= 1 or prev is None:
        return x
    return prev + (x - prev) / float(length)


def true_range(high: float, low: float, prev_close: float) -> float:
    return max(high - low, abs(high - prev_close), abs(low - prev_close))


def ema(values: Sequence[float], period: int, seed: str = "first") -> List[Optional[float]]:
    """Exponential moving average.

    ``seed="first"`` starts the recursion at ``values[0]`` so every bar has a
    value. ``seed="sma"`` leaves the first ``period-1`` bars as ``None`` and
    seeds with the SMA of the first full window.
    """
    out: List[Optional[float]] = []
    if not values:
        return out
    if seed == "sma":
        if len(values) < period:
            return [None] * len(values)
        out = [None] * (period - 1)
        prev: Optional[float] = sum(values[:period]) / float(period)
        out.append(prev)
        start = period
    else:
        prev = float(values[0])
        out.append(prev)
        start = 1
    for x in values[start:]:
        prev = ema_next(prev, float(x), period)
        out.append(prev)
    return out


def sma(values: Sequence[float], period: int) -> List[Optional[float]]:
    """Rolling-sum simple moving average; ``None`` for indices < period-1."""
    out: List[Optional[float]] = []
    if period <= 0:
        return [None] * len(values)
    total = 0.0
    for i, x in enumerate(values):
        total += x
        if i >= period:
            total -= values[i - period]
        out.append(total / period if i >= period - 1 else None)
    return out


def sma_optional(values: Sequence[Optional[float]], period: int) -> List[Optional[float]]:
    """SMA over a series with gaps; a window containing ``None`` yields ``None``."""
    out: List[Optional[float]] = []
    for i in range(len(values)):
        if period <= 0 or i < period - 1:
            out.append(None)
            continue
        window = values[i - period + 1: i + 1]
        if any(v is None for v in window):
            out.append(None)
        else:
            out.append(sum(window) / float(period))
    return out


def rma(values: Sequence[Optional[float]], period: int, start: int = 0) -> List[Optional[float]]:
    """Wilder smoothing of ``values[start:]`` with an SMA seed."""
    n = len(values)
    out: List[Optional[float]] = [None] * n
    seed_end = start + period
    if period <= 0 or seed_end > n:
        return out
    window = values[start:seed_end]
    if any(v is None for v in window):
        return out
    prev = sum(window) / float(period)
    out[seed_end - 1] = prev
    for i in range(seed_end, n):
        x = values[i]
        if x is None:
            return out
        prev = rma_next(prev, x, period)
        out[i] = prev
    return out


def true_range_series(candles: Sequence[Candle]) -> List[float]:
    trs: List[float] = []
    for i, c in enumerate(candles):
        if i == 0:
            trs.append(c.high - c.low)
        else:
            trs.append(true_range(c.high, c.low, candles[i - 1].close))
    return trs


def atr(candles: Sequence[Candle], period: int) -> List[Optional[float]]:
    return rma(true_range_series(candles), period)


@dataclass(frozen=True)
class DmiSeries:
    plus_di: List[Optional[float]]
    minus_di: List[Optional[float]]
    adx: List[Optional[float]]


def dmi_adx(candles: Sequence[Candle], period: int) -> DmiSeries:
    n = len(candles)
    plus_dm = [0.0] * n
    minus_dm = [0.0] * n
    for i in range(1, n):
        up = candles[i].high - candles[i - 1].high
        down = candles[i - 1].low - candles[i].low
        plus_dm[i] = up if (up > down and up > 0) else 0.0
        minus_dm[i] = down if (down > up and down > 0) else 0.0

    # Bar 0 has no directional movement, smoothing starts at bar 1.
    tr_s = rma(true_range_series(candles), period, start=1)
    plus_s = rma(plus_dm, period, start=1)
    minus_s = rma(minus_dm, period, start=1)

    plus_di: List[Optional[float]] = []
    minus_di: List[Optional[float]] = []
    dx: List[Optional[float]] = []
    for i in range(n):
        t, p, m = tr_s[i], plus_s[i], minus_s[i]
        if t is None or p is None or m is None:
            plus_di.append(None)
            minus_di.append(None)
            dx.append(None)
            continue
        pdi = (p / t) * 100.0 if t > 0 else 0.0
        mdi = (m / t) * 100.0 if t > 0 else 0.0
        plus_di.append(pdi)
        minus_di.append(mdi)
        denom = pdi + mdi
        dx.append(abs(pdi - mdi) / denom * 100.0 if denom > 0 else 0.0)

    first = next((i for i, v in enumerate(dx) if v is not None), None)
    adx = [None] * n if first is None else rma(dx, period, start=first)
    return DmiSeries(plus_di=plus_di, minus_di=minus_di, adx=adx)


@dataclass(frozen=True)
class StochSeries:
    k: List[Optional[float]]
    d: List[Optional[float]]


def stochastic(candles: Sequence[Candle], k_period: int, d_period: int) -> StochSeries:
    k: List[Optional[float]] = []
    for i in range(len(candles)):
        start = i - k_period + 1
        if start < 0:
            k.append(None)
            continue
        window = candles[start: i + 1]
        hh = max(c.high for c in window)
        ll = min(c.low for c in window)
        rng = hh - ll
        k.append(50.0 if rng <= 0 else (candles[i].close - ll) / rng * 100.0)
    return StochSeries(k=k, d=sma_optional(k, d_period))


def log_returns(candles: Sequence[Candle]) -> List[Optional[float]]:
    out: List[Optional[float]] = [None]
    for i in range(1, len(candles)):
        prev, cur = candles[i - 1].close, candles[i].close
        out.append(math.log(cur / prev) if (prev > 0 and cur > 0) else None)
    return out[: len(candles)]


def annualized_volatility(returns: Sequence[float]) -> Optional[float]:
    n = len(returns)
    if n == 0:
        return None
    mean = sum(returns) / n
    variance = sum((r - mean) ** 2 for r in returns) / n
    return math.sqrt(variance * ANNUALIZATION_DAYS)


def historical_volatility(candles: Sequence[Candle], period: int) -> List[Optional[float]]:
    rets = log_returns(candles)
    out: List[Optional[float]] = [None] * len(candles)
    for i in range(period, len(candles)):
        window = rets[i - period + 1: i + 1]
        if any(r is None for r in window):
            continue
        out[i] = annualized_volatility(window)
    return out


def percentile_rank(values: Sequence[Optional[float]], value: Optional[float]) -> Optional[float]:
    """Share of finite ``values`` strictly below ``value``, in percent."""
    if value is None or not math.isfinite(value):
        return None
    arr = [v for v in values if v is not None and math.isfinite(v)]
    if not arr:
        return None
    less = sum(1 for v in arr if v < value)
    return less / len(arr) * 100.0


def hvp(candles: Sequence[Candle], hv_period: int, lookback: int) -> List[Optional[float]]:
    hv = historical_volatility(candles, hv_period)
    out: List[Optional[float]] = []
    for i, v in enumerate(hv):
        if v is None:
            out.append(None)
            continue
        start = max(0, i - lookback + 1)
        out.append(percentile_rank(hv[start: i + 1], v))
    return out


def volume_ratio(candles: Sequence[Candle], lookback: int) -> Optional[float]:
    """Latest volume over the mean of the ``lookback`` bars before it."""
    if lookback <= 0 or len(candles) < lookback + 1:
        return None
    prior = candles[-lookback - 1: -1]
    mean = sum(c.volume for c in prior) / float(lookback)
    if mean <= 0:
        return None
    return candles[-1].volume / mean


def volume_spike(candles: Sequence[Candle], lookback: int, multiplier: float) -> bool:
    ratio = volume_ratio(candles, lookback)
    return ratio is not None and ratio > multiplier
