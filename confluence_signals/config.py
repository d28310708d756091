from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Dict, List, Mapping, Union
import os
import yaml

VARIANTS = ("confluence", "trending", "ranging")


def _env_override(value: Any, env_key: str) -> Any:
    env_val = os.getenv(env_key)
    if env_val is None:
        return value
    # basic parsing
    if isinstance(value, bool):
        return env_val.strip().lower() in ("1", "true", "yes", "y", "on")
    if isinstance(value, int):
        try:
            return int(env_val)
        except ValueError:
            return value
    if isinstance(value, float):
        try:
            return float(env_val)
        except ValueError:
            return value
    return env_val


def _split_ids(raw: str) -> List[str]:
    return [x.strip() for x in raw.split(",") if x.strip()]


@dataclass(frozen=True)
class Options:
    # Optional confirmations
    use_stoch: bool = True
    use_dmi: bool = True
    enable_short_grind: bool = True  # low-volume grind-down shorts, strict guards

    signal_cooldown_hours: float = 2.0
    predictive_buffer: float = 0.001  # 0.1%

    # Crossover pair
    ema_fast: int = 21
    sma_slow: int = 200

    # Volume
    volume_period: int = 20
    volume_spike_ratio: float = 1.5
    grind_volume_ratio: float = 0.8

    # Historical volatility percentile
    hvp_lookback: int = 252
    hvp_hv_period: int = 20
    hvp_sma_period: int = 20

    # Stochastic
    stoch_k: int = 14
    stoch_d: int = 3
    stoch_upper: float = 80.0
    stoch_lower: float = 20.0

    # DMI / ADX
    dmi_period: int = 14
    adx_threshold: float = 20.0

    # Exits
    atr_period: int = 14
    trail_atr_mult: float = 2.0
    breakeven_atr: float = 1.0

    variant: str = "confluence"  # confluence | trending | ranging

    def __post_init__(self) -> None:
        if self.variant not in VARIANTS:
            raise ValueError(f"Unsupported variant: {self.variant} (expected one of {VARIANTS})")
        for name in ("ema_fast", "sma_slow", "volume_period", "hvp_lookback", "hvp_hv_period",
                     "hvp_sma_period", "stoch_k", "stoch_d", "dmi_period", "atr_period"):
            if int(getattr(self, name)) < 1:
                raise ValueError(f"{name} must be >= 1")

    def min_candles(self) -> int:
        return max(self.sma_slow + 2, self.hvp_lookback + 5)

    def cooldown_ms(self) -> int:
        return int(self.signal_cooldown_hours * 3_600_000)

    def signature(self) -> Dict[str, object]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


OptionsLike = Union[None, Options, Mapping[str, Any]]


def merge_options(base: Options, overrides: OptionsLike) -> Options:
    """Return `base` with `overrides` applied. Accepts an Options, a mapping, or None."""
    if overrides is None:
        return base
    if isinstance(overrides, Options):
        return overrides
    known = {f.name for f in fields(Options)}
    unknown = [k for k in overrides if k not in known]
    if unknown:
        raise ValueError("Unknown option(s): " + ", ".join(sorted(unknown)))
    return replace(base, **dict(overrides))


@dataclass
class ProviderConfig:
    type: str = "binance"
    market: str = "futures"  # futures|spot
    symbols: List[str] = None
    timeframes: List[str] = None
    candles: int = 400
    rest_timeout_s: int = 20
    rest_max_retries: int = 4
    rest_backoff_s: float = 0.8
    fallback_synthetic: bool = False
    synthetic_seed: int = 7


@dataclass
class RunnerConfig:
    poll_interval_s: int = 60
    concurrency: int = 5
    use_prefilter: bool = False
    dedupe: bool = True


@dataclass
class TelegramConfig:
    enabled: bool = True
    token: str = ""
    chat_ids: List[str] = None
    disable_web_page_preview: bool = True


@dataclass
class AlertsConfig:
    parse_mode: str = "HTML"  # HTML | MarkdownV2
    include_meta: bool = True
    notify_exits: bool = True
    footer: str = ""


@dataclass
class AppConfig:
    name: str = "Confluence Signals"
    log_level: str = "INFO"


@dataclass
class Config:
    app: AppConfig
    provider: ProviderConfig
    runner: RunnerConfig
    strategy: Options
    telegram: TelegramConfig
    alerts: AlertsConfig


def load_config(path: str) -> Config:
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    return config_from_dict(raw)


def config_from_dict(raw: Mapping[str, Any]) -> Config:
    app = raw.get("app", {}) or {}
    provider = raw.get("provider", {}) or {}
    runner = raw.get("runner", {}) or {}
    strategy = raw.get("strategy", {}) or {}
    tg = raw.get("telegram", {}) or {}
    alerts = raw.get("alerts", {}) or {}

    cfg = Config(
        app=AppConfig(**app),
        provider=ProviderConfig(**provider),
        runner=RunnerConfig(**runner),
        strategy=merge_options(Options(), strategy),
        telegram=TelegramConfig(**tg),
        alerts=AlertsConfig(**alerts),
    )

    if cfg.provider.symbols is None:
        cfg.provider.symbols = []
    cfg.provider.symbols = [s.upper() for s in cfg.provider.symbols]
    if cfg.provider.timeframes is None:
        cfg.provider.timeframes = []

    # env overrides (useful on servers)
    cfg.app.log_level = _env_override(cfg.app.log_level, "CONFLUENCE_LOG_LEVEL")
    cfg.telegram.token = _env_override(cfg.telegram.token, "TELEGRAM_TOKEN")
    if cfg.telegram.chat_ids is None:
        cfg.telegram.chat_ids = []

    # Allow TELEGRAM_CHAT_IDS="id1,id2"
    chat_env = os.getenv("TELEGRAM_CHAT_IDS")
    if chat_env:
        cfg.telegram.chat_ids = _split_ids(chat_env)

    return cfg
