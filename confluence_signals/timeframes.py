from __future__ import annotations

from typing import Dict, Optional

from .models import TIMEFRAMES, Signal

# How long a freshly issued signal stays actionable: one bar of its timeframe.
SIGNAL_TTL_SECONDS: Dict[str, int] = {
    "5m": 5 * 60,
    "15m": 15 * 60,
    "1h": 60 * 60,
    "4h": 240 * 60,
}


def timeframe_minutes(tf: str) -> int:
    tf = (tf or "").strip().lower()
    if tf not in TIMEFRAMES:
        raise ValueError(f"Unsupported timeframe: {tf}")
    if tf.endswith("m"):
        return int(tf[:-1])
    return int(tf[:-1]) * 60


def timeframe_ms(tf: str) -> int:
    return timeframe_minutes(tf) * 60_000


def signal_expires_at(sig: Signal, issued_ms: Optional[int] = None) -> int:
    """Expiry in epoch ms, counted from ``issued_ms`` or, if absent, the signal's bar time."""
    base = int(sig.time) if issued_ms is None else int(issued_ms)
    return base + SIGNAL_TTL_SECONDS[sig.timeframe] * 1000


def is_expired(sig: Signal, now_ms: int, issued_ms: Optional[int] = None) -> bool:
    return int(now_ms) >= signal_expires_at(sig, issued_ms)
