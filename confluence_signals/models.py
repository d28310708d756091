from __future__ import annotations
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Tuple, Union

TIMEFRAMES: Tuple[str, ...] = ("5m", "15m", "1h", "4h")

LONG = "LONG"
SHORT = "SHORT"
DIRECTIONS: Tuple[str, ...] = (LONG, SHORT)

ENTRY = "ENTRY"
EXIT = "EXIT"

# Signal reasons
PRE_CROSS = "PreCross"
CROSS = "Cross"
REVERSE_CROSS = "ReverseCross"
TRAILING_STOP = "TrailingStop"


@dataclass(frozen=True)
class Candle:
    time: int  # epoch ms, ascending
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class SymbolInput:
    symbol: str
    timeframe: str
    candles: List[Candle]

    def __post_init__(self) -> None:
        if self.timeframe not in TIMEFRAMES:
            raise ValueError(f"Unsupported timeframe: {self.timeframe} (expected one of {TIMEFRAMES})")


@dataclass(frozen=True)
class EntryMeta:
    """Indicator bundle attached to ENTRY signals."""

    volume_ratio: Optional[float]
    hvp: Optional[float]
    hvp_sma: Optional[float]
    adx: Optional[float]
    plus_di: Optional[float]
    minus_di: Optional[float]
    stoch_k: Optional[float]
    stoch_d: Optional[float]
    atr: Optional[float]
    ema: float
    sma: float
    required_cross_price: Optional[float]
    variant: str
    confirmations: Tuple[str, ...] = ()
    bundle: str = field(default="entry", init=False)

    def as_dict(self) -> Dict[str, object]:
        d = asdict(self)
        d["confirmations"] = list(self.confirmations)
        return d


@dataclass(frozen=True)
class ExitMeta:
    """Position bundle attached to EXIT signals."""

    entry_price: float
    trailing_stop: float
    atr: Optional[float]
    highest_close_since_entry: float
    lowest_close_since_entry: float
    bundle: str = field(default="exit", init=False)

    def as_dict(self) -> Dict[str, object]:
        return asdict(self)


SignalMeta = Union[EntryMeta, ExitMeta]


def signal_id(symbol: str, timeframe: str, time_ms: int, direction: str, kind: str) -> str:
    return f"{symbol}:{timeframe}:{int(time_ms)}:{direction}:{kind}"


@dataclass(frozen=True)
class Signal:
    id: str
    symbol: str
    timeframe: str
    time: int
    direction: str  # LONG or SHORT
    kind: str  # ENTRY or EXIT
    reason: str  # PreCross | Cross | ReverseCross | TrailingStop
    price: float
    meta: SignalMeta
    confidence: Optional[int] = None
    grade: Optional[str] = None

    def upsert_key(self) -> Tuple[str, str, int, str, str]:
        return (self.symbol, self.timeframe, self.time, self.direction, self.kind)

    def as_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "timeframe": self.timeframe,
            "time": self.time,
            "direction": self.direction,
            "kind": self.kind,
            "reason": self.reason,
            "price": self.price,
            "confidence": self.confidence,
            "grade": self.grade,
            "meta": self.meta.as_dict(),
        }


@dataclass
class PositionState:
    direction: str
    entry_price: float
    highest_close_since_entry: float
    lowest_close_since_entry: float
    trailing_stop: float


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Latest-bar values the crossover, confirmation and position logic work on."""

    time: int
    close: float
    ema_now: float
    ema_prev: float
    sma_now: float
    sma_prev: float
    close_leaving: float  # close that drops out of the SMA window on the next bar
    atr: Optional[float]
    volume_ratio: Optional[float]
    hvp: Optional[float]
    hvp_sma: Optional[float]
    stoch_k_now: Optional[float]
    stoch_k_prev: Optional[float]
    stoch_d_now: Optional[float]
    stoch_d_prev: Optional[float]
    plus_di: Optional[float]
    minus_di: Optional[float]
    adx: Optional[float]
