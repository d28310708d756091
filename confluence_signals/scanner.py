from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .config import Options, OptionsLike, merge_options
from .crossover import crosses_down, crosses_up
from .indicators import ema, hvp, sma, volume_ratio
from .models import SymbolInput

NEAR_GAP = 0.01
TIGHT_GAP = 0.005
MIN_VOLUME_RATIO = 1.2
MIN_HVP = 50.0


@dataclass(frozen=True)
class ScanCandidate:
    symbol: str
    score: int


def scan_candidates(inp: SymbolInput, options: OptionsLike = None) -> Optional[ScanCandidate]:
    """Cheap pre-filter: is this key close enough to a cross to be worth a full evaluation?

    Eligible when EMA is within 1% of SMA (or crossed on this bar), volume is
    above 1.2x its average and HVP is above 50. Never touches state.
    """
    o: Options = merge_options(Options(), options)
    candles = inp.candles
    if len(candles) < o.sma_slow + 5:
        return None

    closes = [c.close for c in candles]
    i = len(closes) - 1
    ema_s = ema(closes, o.ema_fast)
    sma_s = sma(closes, o.sma_slow)
    if closes[i] <= 0:
        return None

    gap = abs((ema_s[i] - sma_s[i]) / closes[i])
    crossed = crosses_up(ema_s[i - 1], ema_s[i], sma_s[i - 1], sma_s[i]) or \
        crosses_down(ema_s[i - 1], ema_s[i], sma_s[i - 1], sma_s[i])

    vr = volume_ratio(candles, o.volume_period) or 0.0
    hvp_now = hvp(candles, o.hvp_hv_period, o.hvp_lookback)[i]
    hvp_now = hvp_now if hvp_now is not None else 0.0

    if not ((gap < NEAR_GAP or crossed) and vr > MIN_VOLUME_RATIO and hvp_now > MIN_HVP):
        return None

    score = 0
    if gap < TIGHT_GAP:
        score += 20
    if vr > 1.5:
        score += 20
    if hvp_now > 60:
        score += 10
    return ScanCandidate(symbol=inp.symbol, score=score)
