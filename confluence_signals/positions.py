from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Optional

from .models import LONG, REVERSE_CROSS, TRAILING_STOP, PositionState
from .state import StateStore

log = logging.getLogger("positions")


def position_key(symbol: str, timeframe: str) -> str:
    return f"position:{symbol}:{timeframe}"


@dataclass(frozen=True)
class ExitDecision:
    reason: str  # TrailingStop | ReverseCross
    state: PositionState  # state as of the exit bar


class PositionTracker:
    """FLAT -> OPEN_LONG/OPEN_SHORT -> FLAT per (symbol, timeframe).

    FLAT means the key is absent from the store. At most one position per key.
    """

    def __init__(self, store: StateStore, trail_atr_mult: float, breakeven_atr: float):
        self.store = store
        self.trail_atr_mult = float(trail_atr_mult)
        self.breakeven_atr = float(breakeven_atr)

    def get(self, symbol: str, timeframe: str) -> Optional[PositionState]:
        return self.store.get(position_key(symbol, timeframe))

    def is_open(self, symbol: str, timeframe: str) -> bool:
        return self.get(symbol, timeframe) is not None

    def open(self, symbol: str, timeframe: str, direction: str, price: float, atr: Optional[float]) -> PositionState:
        if self.is_open(symbol, timeframe):
            raise ValueError(f"position already open for {symbol} {timeframe}")
        offset = (atr or 0.0) * self.trail_atr_mult
        stop = price - offset if direction == LONG else price + offset
        state = PositionState(
            direction=direction,
            entry_price=price,
            highest_close_since_entry=price,
            lowest_close_since_entry=price,
            trailing_stop=stop,
        )
        self.store.set(position_key(symbol, timeframe), state)
        log.debug("position_open symbol=%s tf=%s dir=%s entry=%s stop=%s", symbol, timeframe, direction, price, stop)
        return state

    def close(self, symbol: str, timeframe: str) -> None:
        self.store.delete(position_key(symbol, timeframe))

    def update(
        self,
        symbol: str,
        timeframe: str,
        close: float,
        atr: Optional[float],
        *,
        bearish_cross: bool,
        bullish_cross: bool,
    ) -> Optional[ExitDecision]:
        """Advance an open position by one bar. Returns the exit, if any, and drops the state."""
        current = self.get(symbol, timeframe)
        if current is None:
            return None

        s = replace(current)
        s.highest_close_since_entry = max(s.highest_close_since_entry, close)
        s.lowest_close_since_entry = min(s.lowest_close_since_entry, close)

        if s.direction == LONG:
            if atr is not None:
                s.trailing_stop = max(s.trailing_stop, s.highest_close_since_entry - atr * self.trail_atr_mult)
                if close - s.entry_price >= atr * self.breakeven_atr:
                    s.trailing_stop = max(s.trailing_stop, s.entry_price)
            hit_stop = close <= s.trailing_stop
            reverse = bearish_cross
        else:
            if atr is not None:
                s.trailing_stop = min(s.trailing_stop, s.lowest_close_since_entry + atr * self.trail_atr_mult)
                if s.entry_price - close >= atr * self.breakeven_atr:
                    s.trailing_stop = min(s.trailing_stop, s.entry_price)
            hit_stop = close >= s.trailing_stop
            reverse = bullish_cross

        if reverse or hit_stop:
            self.close(symbol, timeframe)
            reason = REVERSE_CROSS if reverse else TRAILING_STOP
            log.debug("position_exit symbol=%s tf=%s dir=%s reason=%s close=%s stop=%s",
                      symbol, timeframe, s.direction, reason, close, s.trailing_stop)
            return ExitDecision(reason=reason, state=s)

        self.store.set(position_key(symbol, timeframe), s)
        return None

