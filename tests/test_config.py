import pytest

from confluence_signals.config import Options, config_from_dict, load_config, merge_options
from confluence_signals.models import Candle, SymbolInput


def test_options_defaults():
    o = Options()
    assert (o.ema_fast, o.sma_slow) == (21, 200)
    assert o.use_stoch and o.use_dmi and o.enable_short_grind
    assert o.signal_cooldown_hours == 2.0
    assert o.predictive_buffer == 0.001
    assert o.min_candles() == 257
    assert o.cooldown_ms() == 7_200_000
    assert o.signature()["variant"] == "confluence"


def test_merge_options():
    base = Options()
    assert merge_options(base, None) is base
    merged = merge_options(base, {"ema_fast": 9, "use_stoch": False})
    assert merged.ema_fast == 9 and merged.use_stoch is False
    assert base.ema_fast == 21
    other = Options(sma_slow=100)
    assert merge_options(base, other) is other
    with pytest.raises(ValueError):
        merge_options(base, {"ema_slow": 3})


def test_options_validation():
    with pytest.raises(ValueError):
        Options(variant="scalping")
    with pytest.raises(ValueError):
        Options(sma_slow=0)


def test_symbol_input_rejects_unknown_timeframe():
    with pytest.raises(ValueError):
        SymbolInput("BTCUSDT", "1d", [Candle(0, 1, 1, 1, 1, 1)])


def test_load_config_with_env_overrides(tmp_path, monkeypatch):
    p = tmp_path / "config.yaml"
    p.write_text(
        """
app:
  name: Test Bot
  log_level: INFO
provider:
  type: synthetic
  symbols: [btcusdt, ethusdt]
  timeframes: ["1h", "4h"]
runner:
  use_prefilter: true
strategy:
  ema_fast: 9
  variant: trending
telegram:
  enabled: true
  token: from-file
alerts:
  parse_mode: MarkdownV2
""",
        encoding="utf-8",
    )
    monkeypatch.setenv("TELEGRAM_TOKEN", "from-env")
    monkeypatch.setenv("TELEGRAM_CHAT_IDS", "1, 2,,3")
    monkeypatch.setenv("CONFLUENCE_LOG_LEVEL", "DEBUG")

    cfg = load_config(str(p))
    assert cfg.app.name == "Test Bot"
    assert cfg.app.log_level == "DEBUG"
    assert cfg.provider.symbols == ["BTCUSDT", "ETHUSDT"]
    assert cfg.provider.timeframes == ["1h", "4h"]
    assert cfg.runner.use_prefilter is True
    assert cfg.strategy.ema_fast == 9
    assert cfg.strategy.variant == "trending"
    assert cfg.strategy.sma_slow == 200
    assert cfg.telegram.token == "from-env"
    assert cfg.telegram.chat_ids == ["1", "2", "3"]
    assert cfg.alerts.parse_mode == "MarkdownV2"


def test_config_from_empty_dict(monkeypatch):
    monkeypatch.delenv("TELEGRAM_CHAT_IDS", raising=False)
    monkeypatch.delenv("TELEGRAM_TOKEN", raising=False)
    cfg = config_from_dict({})
    assert cfg.provider.symbols == []
    assert cfg.telegram.chat_ids == []
    assert cfg.strategy == Options()


def test_unknown_strategy_key_is_rejected():
    with pytest.raises(ValueError):
        config_from_dict({"strategy": {"fast_ema": 9}})
