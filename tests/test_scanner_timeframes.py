import pytest

from confluence_signals.config import Options
from confluence_signals.models import ENTRY, LONG, Candle, EntryMeta, Signal, SymbolInput
from confluence_signals.scanner import scan_candidates
from confluence_signals.timeframes import (
    SIGNAL_TTL_SECONDS,
    is_expired,
    signal_expires_at,
    timeframe_minutes,
    timeframe_ms,
)

HOUR = 3_600_000
FAST = Options(ema_fast=10, sma_slow=50, hvp_lookback=60, hvp_hv_period=10)


def _series(closes, volumes):
    out = []
    prev = closes[0]
    for i, (c, v) in enumerate(zip(closes, volumes)):
        out.append(Candle(time=i * HOUR, open=prev, high=max(prev, c), low=min(prev, c), close=c, volume=v))
        prev = c
    return out


def test_scanner_flags_cross_with_volume_and_volatility():
    closes = [101.0 if i % 2 == 0 else 99.0 for i in range(64)] + [105.0]
    volumes = [1000.0] * 64 + [2000.0]
    cand = scan_candidates(SymbolInput("BTCUSDT", "1h", _series(closes, volumes)), FAST)
    assert cand is not None
    assert cand.symbol == "BTCUSDT"
    # volume > 1.5 and HVP > 60; gap is above 0.5%
    assert cand.score == 30


def test_scanner_rejects_quiet_market():
    closes = [100.0] * 80
    cand = scan_candidates(SymbolInput("BTCUSDT", "1h", _series(closes, [1000.0] * 80)), FAST)
    assert cand is None


def test_scanner_rejects_short_history():
    closes = [100.0] * 20
    assert scan_candidates(SymbolInput("BTCUSDT", "1h", _series(closes, [1.0] * 20)), FAST) is None


def test_timeframe_helpers():
    assert timeframe_minutes("5m") == 5
    assert timeframe_minutes("4h") == 240
    assert timeframe_ms("15m") == 900_000
    assert timeframe_ms("1h") == HOUR
    assert SIGNAL_TTL_SECONDS == {"5m": 300, "15m": 900, "1h": 3600, "4h": 14400}
    with pytest.raises(ValueError):
        timeframe_ms("1d")


def _signal(tf: str, t: int) -> Signal:
    meta = EntryMeta(
        volume_ratio=2.0, hvp=60.0, hvp_sma=50.0, adx=25.0, plus_di=30.0, minus_di=10.0,
        stoch_k=40.0, stoch_d=30.0, atr=1.0, ema=101.0, sma=100.0, required_cross_price=None,
        variant="confluence",
    )
    return Signal(id=f"BTCUSDT:{tf}:{t}:LONG:ENTRY", symbol="BTCUSDT", timeframe=tf, time=t,
                  direction=LONG, kind=ENTRY, reason="Cross", price=101.0, meta=meta, confidence=80, grade="B")


def test_signal_expiry():
    sig = _signal("15m", 1_000_000)
    assert signal_expires_at(sig) == 1_000_000 + 900_000
    assert not is_expired(sig, 1_000_000 + 899_999)
    assert is_expired(sig, 1_000_000 + 900_000)
    assert signal_expires_at(sig, issued_ms=5_000_000) == 5_900_000
    assert sig.upsert_key() == ("BTCUSDT", "15m", 1_000_000, LONG, ENTRY)
