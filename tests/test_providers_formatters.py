import asyncio

from confluence_signals.config import AlertsConfig
from confluence_signals.formatters import format_signal
from confluence_signals.models import ENTRY, EXIT, LONG, SHORT, EntryMeta, ExitMeta, Signal
from confluence_signals.notifier.telegram import TelegramNotifier
from confluence_signals.providers.binance import parse_klines
from confluence_signals.providers.synthetic import FallbackCandleSource, SyntheticCandleSource

HOUR = 3_600_000
NOW = 1_700_000_000_000


def test_parse_klines_drops_forming_bar():
    rows = [
        [0, "10", "11", "9", "10.5", "100", HOUR - 1],
        [HOUR, "10.5", "12", "10", "11.5", "200", 2 * HOUR - 1],
    ]
    out = parse_klines(rows, now_ms=2 * HOUR - 10)
    assert len(out) == 1
    c = out[0]
    assert (c.time, c.open, c.high, c.low, c.close, c.volume) == (0, 10.0, 11.0, 9.0, 10.5, 100.0)
    assert len(parse_klines(rows, now_ms=2 * HOUR)) == 2


def test_synthetic_source_is_deterministic_and_aligned():
    src = SyntheticCandleSource(seed=7, now_ms=NOW)
    a = src.generate("BTCUSDT", "1h", 300)
    b = asyncio.run(src.fetch_candles("BTCUSDT", "1h", 300))
    assert a == b
    assert len(a) == 300
    assert all(c.time % HOUR == 0 for c in a)
    assert all(y.time - x.time == HOUR for x, y in zip(a, a[1:]))
    assert a[-1].time + HOUR <= NOW
    assert a[0].open == 43000.0
    assert all(c.high >= max(c.open, c.close) and c.low <= min(c.open, c.close) for c in a)
    assert SyntheticCandleSource(seed=8, now_ms=NOW).generate("BTCUSDT", "1h", 300) != a
    assert src.generate("XYZUSDT", "5m", 5)[0].open == 100.0


class _Primary:
    def __init__(self, candles=None, exc=None):
        self.candles = candles or []
        self.exc = exc

    async def fetch_candles(self, symbol, timeframe, limit):
        if self.exc:
            raise self.exc
        return self.candles


def test_fallback_source():
    synth = SyntheticCandleSource(seed=1, now_ms=NOW)
    good = synth.generate("ETHUSDT", "4h", 10)

    src = FallbackCandleSource(_Primary(candles=good), synth, min_candles=10)
    assert asyncio.run(src.fetch_candles("ETHUSDT", "4h", 10)) is good

    src = FallbackCandleSource(_Primary(candles=good[:3]), synth, min_candles=10)
    assert len(asyncio.run(src.fetch_candles("ETHUSDT", "4h", 10))) == 10

    src = FallbackCandleSource(_Primary(exc=RuntimeError("boom")), synth, min_candles=10)
    assert asyncio.run(src.fetch_candles("ETHUSDT", "4h", 10)) == good


def _entry() -> Signal:
    meta = EntryMeta(
        volume_ratio=2.1, hvp=72.5, hvp_sma=60.0, adx=27.0, plus_di=31.0, minus_di=12.0,
        stoch_k=45.0, stoch_d=38.0, atr=1.25, ema=101.5, sma=100.2, required_cross_price=None,
        variant="confluence", confirmations=("volume_spike", "volatility"),
    )
    return Signal(id="BTCUSDT:1h:0:LONG:ENTRY", symbol="BTCUSDT", timeframe="1h", time=0, direction=LONG,
                  kind=ENTRY, reason="Cross", price=101.5, meta=meta, confidence=83, grade="B")


def test_format_entry_html():
    text = format_signal(_entry(), AlertsConfig(footer="<not financial advice>"), issued_ms=0)
    assert "<b>BTCUSDT</b>" in text
    assert "<b>LONG ENTRY</b> (Cross)" in text
    assert "Confidence: 83 (B)" in text
    assert "Valid until: 1970-01-01 01:00" in text
    assert "Volume: 2.10x" in text
    assert "Confirmed: volume_spike, volatility" in text
    assert "&lt;not financial advice&gt;" in text


def test_format_entry_markdown_and_no_meta():
    text = format_signal(_entry(), AlertsConfig(parse_mode="MarkdownV2", include_meta=False))
    assert "*BTCUSDT*" in text
    assert "Price: 101\\.5" in text
    assert "Volume:" not in text
    assert "Valid until" not in text


def test_format_exit():
    meta = ExitMeta(entry_price=100.0, trailing_stop=103.0, atr=1.0,
                    highest_close_since_entry=101.0, lowest_close_since_entry=97.0)
    sig = Signal(id="ETHUSDT:4h:0:SHORT:EXIT", symbol="ETHUSDT", timeframe="4h", time=0, direction=SHORT,
                 kind=EXIT, reason="TrailingStop", price=103.5, meta=meta)
    text = format_signal(sig, AlertsConfig())
    assert "<b>SHORT EXIT</b> (TrailingStop)" in text
    assert "Entry: 100 | Stop: 103" in text
    assert "Move: -3.50%" in text
    assert "Confidence" not in text


def test_telegram_notifier_without_targets_is_noop():
    tg = TelegramNotifier(token="", chat_ids=["1"])
    assert not tg.enabled()
    assert asyncio.run(tg.send("hello")) == 0

    tg = TelegramNotifier(token="abc", chat_ids=[" ", ""])
    assert not tg.enabled()
    assert asyncio.run(tg.send("hello")) == 0

    tg = TelegramNotifier(token="abc", chat_ids=[" 42 "])
    assert tg.enabled()
    payload = tg._payload("42", "hi", "HTML")
    assert payload == {"chat_id": "42", "text": "hi", "disable_web_page_preview": True, "parse_mode": "HTML"}
    assert "parse_mode" not in tg._payload("42", "hi", None)
