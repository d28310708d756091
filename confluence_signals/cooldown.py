from __future__ import annotations

from typing import Optional

from .state import StateStore


def cooldown_key(symbol: str, timeframe: str, direction: str) -> str:
    return f"cooldown:{symbol}:{timeframe}:{direction}"


class CooldownLedger:
    """Last ENTRY time per (symbol, timeframe, direction).

    Entries are overwritten, never deleted; staleness is purely elapsed time.
    """

    def __init__(self, store: StateStore, cooldown_hours: float):
        self.store = store
        self.cooldown_ms = int(cooldown_hours * 3_600_000)

    def last_fired(self, symbol: str, timeframe: str, direction: str) -> Optional[int]:
        v = self.store.get(cooldown_key(symbol, timeframe, direction))
        return int(v) if v is not None else None

    def allow_entry(self, symbol: str, timeframe: str, direction: str, now_ms: int) -> bool:
        last = self.last_fired(symbol, timeframe, direction)
        if last is None:
            return True
        return (now_ms - last) >= self.cooldown_ms

    def record_fired(self, symbol: str, timeframe: str, direction: str, now_ms: int) -> None:
        self.store.set(cooldown_key(symbol, timeframe, direction), int(now_ms))
