from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional, Sequence

from .config import Options, OptionsLike, merge_options
from .confirmations import ConfirmationEngine, Confirmations
from .cooldown import CooldownLedger
from .crossover import CrossoverDetector, CrossResult
from .indicators import atr, dmi_adx, ema, hvp, sma, sma_optional, stochastic, volume_ratio
from .models import (
    CROSS,
    ENTRY,
    EXIT,
    PRE_CROSS,
    Candle,
    EntryMeta,
    ExitMeta,
    IndicatorSnapshot,
    Signal,
    SymbolInput,
    signal_id,
)
from .positions import PositionTracker
from .scoring import ConfidenceScorer
from .state import InMemoryStateStore, KeyedLocks, StateStore

log = logging.getLogger("strategy")


def _at(series: Sequence[Optional[float]], i: int) -> Optional[float]:
    return series[i] if 0 <= i < len(series) else None


def build_snapshot(candles: Sequence[Candle], opts: Options) -> IndicatorSnapshot:
    """Indicator values for the latest bar. Assumes ``len(candles) >= opts.min_candles()``."""
    closes = [c.close for c in candles]
    i = len(candles) - 1

    ema_s = ema(closes, opts.ema_fast)
    sma_s = sma(closes, opts.sma_slow)
    atr_s = atr(candles, opts.atr_period)
    hvp_s = hvp(candles, opts.hvp_hv_period, opts.hvp_lookback)
    hvp_sma_s = sma_optional(hvp_s, opts.hvp_sma_period)
    st = stochastic(candles, opts.stoch_k, opts.stoch_d)
    dm = dmi_adx(candles, opts.dmi_period)

    return IndicatorSnapshot(
        time=candles[i].time,
        close=closes[i],
        ema_now=ema_s[i],
        ema_prev=ema_s[i - 1],
        sma_now=sma_s[i],
        sma_prev=sma_s[i - 1],
        close_leaving=closes[i - opts.sma_slow + 1],
        atr=_at(atr_s, i),
        volume_ratio=volume_ratio(candles, opts.volume_period),
        hvp=_at(hvp_s, i),
        hvp_sma=_at(hvp_sma_s, i),
        stoch_k_now=_at(st.k, i),
        stoch_k_prev=_at(st.k, i - 1),
        stoch_d_now=_at(st.d, i),
        stoch_d_prev=_at(st.d, i - 1),
        plus_di=_at(dm.plus_di, i),
        minus_di=_at(dm.minus_di, i),
        adx=_at(dm.adx, i),
    )


# Variant gates. Volume and volatility are required everywhere; the variant
# decides which of stochastic / DMI are hard requirements and which only score.
def _confluence_gate(o: Options, c: Confirmations) -> bool:
    return (c.stoch or not o.use_stoch) and (c.dmi or not o.use_dmi)


def _trending_gate(o: Options, c: Confirmations) -> bool:
    return c.dmi


def _ranging_gate(o: Options, c: Confirmations) -> bool:
    return c.stoch


VARIANT_GATES: Dict[str, Callable[[Options, Confirmations], bool]] = {
    "confluence": _confluence_gate,
    "trending": _trending_gate,
    "ranging": _ranging_gate,
}


def passes_variant(o: Options, c: Confirmations) -> bool:
    if not (c.volume and c.volatility):
        return False
    return VARIANT_GATES[o.variant](o, c)


class SignalEngine:
    """Evaluates the latest bar of a candle window into ENTRY/EXIT signals.

    Cooldown and position state live in the injected store; the engine itself
    keeps only options, counters and per-key diagnostics. Counters and the
    diagnostics map are shared across keys and guarded by one engine lock.
    """

    def __init__(self, options: OptionsLike = None, store: Optional[StateStore] = None):
        self.options = merge_options(Options(), options)
        self.store = store if store is not None else InMemoryStateStore()
        self.scorer = ConfidenceScorer()
        self.locks = KeyedLocks()
        self._stats_lock = threading.Lock()
        self.diagnostics: Dict[str, Dict[str, object]] = {}
        self.last_diagnostics: Dict[str, object] = {}

        self.evaluations = 0
        self.entries_total = 0
        self.exits_total = 0
        self.suppressed_total = 0

    def _bump(self, counter: str) -> None:
        with self._stats_lock:
            setattr(self, counter, getattr(self, counter) + 1)

    def diagnostics_for(self, symbol: str, timeframe: str) -> Dict[str, object]:
        with self._stats_lock:
            return self.diagnostics.get(f"{symbol}:{timeframe}", {})

    def has_open_position(self, symbol: str, timeframe: str) -> bool:
        o = self.options
        return PositionTracker(self.store, o.trail_atr_mult, o.breakeven_atr).is_open(symbol, timeframe)

    def generate_signals(self, inp: SymbolInput, options: OptionsLike = None) -> List[Signal]:
        with self.locks.lock_for(f"{inp.symbol}:{inp.timeframe}"):
            return self._generate(inp, merge_options(self.options, options))

    def _generate(self, inp: SymbolInput, o: Options) -> List[Signal]:
        self._bump("evaluations")
        candles = inp.candles
        need = o.min_candles()
        diag: Dict[str, object] = {
            "symbol": inp.symbol,
            "timeframe": inp.timeframe,
            "bars": len(candles),
            "min_candles": need,
            "variant": o.variant,
            "cross": None,
            "LONG": None,
            "SHORT": None,
            "exit": None,
            "entry": None,
        }
        with self._stats_lock:
            self.diagnostics[f"{inp.symbol}:{inp.timeframe}"] = diag
            self.last_diagnostics = diag

        if len(candles) < need:
            diag["skipped"] = "insufficient_data"
            log.debug("skip symbol=%s tf=%s bars=%d need=%d", inp.symbol, inp.timeframe, len(candles), need)
            return []

        snap = build_snapshot(candles, o)
        cross = CrossoverDetector(o.ema_fast, o.sma_slow, o.predictive_buffer).detect(snap)
        diag["cross"] = cross.state
        diag["required_cross_price"] = cross.required_cross_price

        positions = PositionTracker(self.store, o.trail_atr_mult, o.breakeven_atr)
        out: List[Signal] = []

        # Exits first so a reverse cross can close and re-open in one call.
        exit_sig = self._evaluate_exit(inp, snap, cross, positions)
        if exit_sig is not None:
            out.append(exit_sig)
            diag["exit"] = exit_sig.reason

        entry_sig = self._evaluate_entry(inp, snap, cross, positions, o, diag)
        if entry_sig is not None:
            out.append(entry_sig)
            diag["entry"] = entry_sig.id

        return out

    def _evaluate_exit(
        self,
        inp: SymbolInput,
        snap: IndicatorSnapshot,
        cross: CrossResult,
        positions: PositionTracker,
    ) -> Optional[Signal]:
        decision = positions.update(
            inp.symbol,
            inp.timeframe,
            snap.close,
            snap.atr,
            bearish_cross=cross.bearish_cross,
            bullish_cross=cross.bullish_cross,
        )
        if decision is None:
            return None
        s = decision.state
        self._bump("exits_total")
        sig = Signal(
            id=signal_id(inp.symbol, inp.timeframe, snap.time, s.direction, EXIT),
            symbol=inp.symbol,
            timeframe=inp.timeframe,
            time=snap.time,
            direction=s.direction,
            kind=EXIT,
            reason=decision.reason,
            price=snap.close,
            meta=ExitMeta(
                entry_price=s.entry_price,
                trailing_stop=s.trailing_stop,
                atr=snap.atr,
                highest_close_since_entry=s.highest_close_since_entry,
                lowest_close_since_entry=s.lowest_close_since_entry,
            ),
        )
        log.info("exit symbol=%s tf=%s dir=%s reason=%s price=%s entry=%s",
                 inp.symbol, inp.timeframe, s.direction, decision.reason, snap.close, s.entry_price)
        return sig

    def _evaluate_entry(
        self,
        inp: SymbolInput,
        snap: IndicatorSnapshot,
        cross: CrossResult,
        positions: PositionTracker,
        o: Options,
        diag: Dict[str, object],
    ) -> Optional[Signal]:
        direction = cross.direction
        if direction is None:
            return None

        cooldown = CooldownLedger(self.store, o.signal_cooldown_hours)
        if not cooldown.allow_entry(inp.symbol, inp.timeframe, direction, snap.time):
            self._bump("suppressed_total")
            diag[direction] = "cooldown"
            log.debug("cooldown_suppressed symbol=%s tf=%s dir=%s last=%s now=%s", inp.symbol, inp.timeframe,
                      direction, cooldown.last_fired(inp.symbol, inp.timeframe, direction), snap.time)
            return None

        if positions.is_open(inp.symbol, inp.timeframe):
            diag[direction] = "position_open"
            return None

        conf = ConfirmationEngine(o).evaluate(snap, direction)
        diag["confirmations"] = conf.passed()
        if not passes_variant(o, conf):
            diag[direction] = "confirmations"
            log.debug("candidate_rejected symbol=%s tf=%s dir=%s cross=%s passed=%s",
                      inp.symbol, inp.timeframe, direction, cross.state, ",".join(conf.passed()) or "-")
            return None

        score = self.scorer.score(
            volume_ratio=snap.volume_ratio,
            hvp=snap.hvp,
            stoch_confirmed=conf.stoch,
            dmi_confirmed=conf.dmi,
            used_pre_cross=cross.pre_cross,
        )
        meta = EntryMeta(
            volume_ratio=snap.volume_ratio,
            hvp=snap.hvp,
            hvp_sma=snap.hvp_sma,
            adx=snap.adx,
            plus_di=snap.plus_di,
            minus_di=snap.minus_di,
            stoch_k=snap.stoch_k_now,
            stoch_d=snap.stoch_d_now,
            atr=snap.atr,
            ema=snap.ema_now,
            sma=snap.sma_now,
            required_cross_price=cross.required_cross_price,
            variant=o.variant,
            confirmations=conf.passed(),
        )
        sig = Signal(
            id=signal_id(inp.symbol, inp.timeframe, snap.time, direction, ENTRY),
            symbol=inp.symbol,
            timeframe=inp.timeframe,
            time=snap.time,
            direction=direction,
            kind=ENTRY,
            reason=PRE_CROSS if cross.pre_cross else CROSS,
            price=snap.close,
            meta=meta,
            confidence=score.confidence,
            grade=score.grade,
        )

        cooldown.record_fired(inp.symbol, inp.timeframe, direction, snap.time)
        positions.open(inp.symbol, inp.timeframe, direction, snap.close, snap.atr)
        self._bump("entries_total")
        diag[direction] = "entry"
        log.info("entry symbol=%s tf=%s dir=%s reason=%s price=%s confidence=%d grade=%s",
                 inp.symbol, inp.timeframe, direction, sig.reason, sig.price, score.confidence, score.grade)
        return sig


def generate_signals(inp: SymbolInput, options: OptionsLike = None, *, store: StateStore) -> List[Signal]:
    """One-shot evaluation against a caller-owned store."""
    return SignalEngine(store=store).generate_signals(inp, options)
