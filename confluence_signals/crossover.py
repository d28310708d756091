from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .models import IndicatorSnapshot, LONG, SHORT

CROSS_UP = "CROSS_UP"
CROSS_DOWN = "CROSS_DOWN"
NEAR_CROSS = "NEAR_CROSS"


def crosses_up(a_prev: Optional[float], a_now: Optional[float], b_prev: Optional[float], b_now: Optional[float]) -> bool:
    if a_prev is None or a_now is None or b_prev is None or b_now is None:
        return False
    return a_prev <= b_prev and a_now > b_now


def crosses_down(a_prev: Optional[float], a_now: Optional[float], b_prev: Optional[float], b_now: Optional[float]) -> bool:
    if a_prev is None or a_now is None or b_prev is None or b_now is None:
        return False
    return a_prev >= b_prev and a_now < b_now


def required_cross_price(ema_now: float, sma_now: float, close_leaving: float, ema_period: int, sma_period: int) -> Optional[float]:
    """Close on the next bar that makes EMA(t+1) == SMA(t+1).

    EMA(t+1) = (1-a)*ema + a*P and SMA(t+1) = sma + (P - leaving)/N are both
    linear in P, so the crossing close has a closed form. ``None`` when the
    two slopes coincide.
    """
    alpha = 2.0 / (ema_period + 1.0)
    inv_n = 1.0 / float(sma_period)
    denom = alpha - inv_n
    if abs(denom) < 1e-12:
        return None
    return (sma_now - close_leaving * inv_n - (1.0 - alpha) * ema_now) / denom


@dataclass(frozen=True)
class CrossResult:
    state: Optional[str] = None  # CROSS_UP | CROSS_DOWN | NEAR_CROSS | None
    direction: Optional[str] = None
    required_cross_price: Optional[float] = None

    @property
    def bullish_cross(self) -> bool:
        return self.state == CROSS_UP

    @property
    def bearish_cross(self) -> bool:
        return self.state == CROSS_DOWN

    @property
    def pre_cross(self) -> bool:
        return self.state == NEAR_CROSS


class CrossoverDetector:
    """EMA(fast) vs SMA(slow) actual and predictive crosses on the latest bar."""

    def __init__(self, ema_fast: int, sma_slow: int, predictive_buffer: float):
        self.ema_fast = ema_fast
        self.sma_slow = sma_slow
        self.predictive_buffer = predictive_buffer

    def detect(self, snap: IndicatorSnapshot) -> CrossResult:
        p_star = required_cross_price(snap.ema_now, snap.sma_now, snap.close_leaving, self.ema_fast, self.sma_slow)

        if crosses_up(snap.ema_prev, snap.ema_now, snap.sma_prev, snap.sma_now):
            return CrossResult(CROSS_UP, LONG, p_star)
        if crosses_down(snap.ema_prev, snap.ema_now, snap.sma_prev, snap.sma_now):
            return CrossResult(CROSS_DOWN, SHORT, p_star)

        if p_star is None or p_star <= 0:
            return CrossResult(required_cross_price=p_star)

        dist_now = snap.ema_now - snap.sma_now
        dist_prev = snap.ema_prev - snap.sma_prev
        buf = float(self.predictive_buffer)

        # EMA below SMA and climbing toward it
        if snap.ema_now <= snap.sma_now and (dist_now - dist_prev) > 0 and snap.close >= p_star * (1.0 - buf):
            return CrossResult(NEAR_CROSS, LONG, p_star)
        # EMA above SMA and sinking toward it
        if snap.ema_now >= snap.sma_now and (dist_prev - dist_now) > 0 and snap.close <= p_star * (1.0 + buf):
            return CrossResult(NEAR_CROSS, SHORT, p_star)

        return CrossResult(required_cross_price=p_star)
