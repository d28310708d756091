from __future__ import annotations

import asyncio
import logging
import time
from typing import Dict, List, Optional, Set, Tuple

from .config import Config
from .formatters import format_signal
from .models import EXIT, Signal, SymbolInput
from .notifier.telegram import TelegramNotifier
from .providers.binance import BinanceProvider
from .providers.synthetic import FallbackCandleSource, SyntheticCandleSource
from .scanner import scan_candidates
from .strategy import SignalEngine
from .timeframes import signal_expires_at

log = logging.getLogger("runner")


def build_source(cfg: Config, min_candles: int):
    p = cfg.provider
    if p.type == "synthetic":
        return SyntheticCandleSource(seed=p.synthetic_seed)
    if p.type != "binance":
        raise ValueError(f"Unsupported provider type: {p.type}")
    primary = BinanceProvider(
        market=p.market,
        rest_timeout_s=p.rest_timeout_s,
        rest_max_retries=p.rest_max_retries,
        rest_backoff_s=p.rest_backoff_s,
    )
    if not p.fallback_synthetic:
        return primary
    return FallbackCandleSource(primary, SyntheticCandleSource(seed=p.synthetic_seed), min_candles)


class ScanRunner:
    """Polls every (symbol, timeframe) key, evaluates it and fans signals out."""

    def __init__(self, cfg: Config, source=None, engine: Optional[SignalEngine] = None,
                 notifier: Optional[TelegramNotifier] = None):
        self.cfg = cfg
        self.engine = engine if engine is not None else SignalEngine(cfg.strategy)
        self.source = source if source is not None else build_source(cfg, self.engine.options.min_candles())
        if notifier is None:
            notifier = TelegramNotifier(
                token=cfg.telegram.token if cfg.telegram.enabled else "",
                chat_ids=cfg.telegram.chat_ids,
                disable_web_page_preview=cfg.telegram.disable_web_page_preview,
            )
        self.tg = notifier

        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}
        self._dedupe: Set[str] = set()
        self._metrics = {
            "cycles_total": 0,
            "evaluations_total": 0,
            "prefilter_skips_total": 0,
            "fetch_failures_total": 0,
            "signals_total": 0,
            "duplicates_total": 0,
        }

    def keys(self) -> List[Tuple[str, str]]:
        symbols = [s.upper() for s in (self.cfg.provider.symbols or [])]
        tfs = list(self.cfg.provider.timeframes or [])
        return [(sym, tf) for sym in symbols for tf in tfs]

    def _lock_for(self, key: Tuple[str, str]) -> asyncio.Lock:
        lk = self._locks.get(key)
        if lk is None:
            lk = asyncio.Lock()
            self._locks[key] = lk
        return lk

    async def evaluate(self, symbol: str, timeframe: str) -> List[Signal]:
        """Fetch, optionally pre-filter, then evaluate one key. Same-key calls run one at a time."""
        async with self._lock_for((symbol, timeframe)):
            candles = await self.source.fetch_candles(symbol, timeframe, int(self.cfg.provider.candles))
            inp = SymbolInput(symbol=symbol, timeframe=timeframe, candles=candles)

            if self.cfg.runner.use_prefilter and not self.engine.has_open_position(symbol, timeframe):
                cand = scan_candidates(inp, self.engine.options)
                if cand is None:
                    self._metrics["prefilter_skips_total"] += 1
                    log.debug("prefilter_skip symbol=%s tf=%s", symbol, timeframe)
                    return []
                log.debug("prefilter_pass symbol=%s tf=%s score=%d", symbol, timeframe, cand.score)

            self._metrics["evaluations_total"] += 1
            return self.engine.generate_signals(inp)

    async def run_once(self) -> List[Signal]:
        keys = self.keys()
        if not keys:
            raise ValueError("No symbols/timeframes configured.")
        self._metrics["cycles_total"] += 1

        sem = asyncio.Semaphore(max(1, int(self.cfg.runner.concurrency)))

        async def _one(sym: str, tf: str):
            try:
                async with sem:
                    return await self.evaluate(sym, tf)
            except Exception as e:
                self._metrics["fetch_failures_total"] += 1
                log.warning("evaluate_failed symbol=%s tf=%s err=%s", sym, tf, e)
                return []

        results = await asyncio.gather(*[_one(sym, tf) for sym, tf in keys])

        emitted: List[Signal] = []
        for signals in results:
            for sig in signals:
                if await self._handle_signal(sig):
                    emitted.append(sig)
        log.info("cycle_done keys=%d signals=%d evaluations=%d skips=%d failures=%d",
                 len(keys), len(emitted), self._metrics["evaluations_total"],
                 self._metrics["prefilter_skips_total"], self._metrics["fetch_failures_total"])
        return emitted

    async def run_forever(self) -> None:
        keys = self.keys()
        if not keys:
            raise ValueError("No symbols/timeframes configured.")
        log.info("runner_start keys=%d interval=%ss variant=%s", len(keys),
                 self.cfg.runner.poll_interval_s, self.engine.options.variant)
        if self.tg.enabled():
            await self.tg.send(f"✅ {self.cfg.app.name}: monitoring {len(keys)} symbol/timeframe pairs.")
        while True:
            started = time.monotonic()
            await self.run_once()
            elapsed = time.monotonic() - started
            await asyncio.sleep(max(0.0, float(self.cfg.runner.poll_interval_s) - elapsed))

    async def close(self) -> None:
        closer = getattr(self.source, "close", None)
        if closer is not None:
            await closer()

    async def _handle_signal(self, sig: Signal) -> bool:
        if self.cfg.runner.dedupe and sig.id in self._dedupe:
            self._metrics["duplicates_total"] += 1
            log.debug("signal_duplicate id=%s", sig.id)
            return False
        self._dedupe.add(sig.id)
        self._metrics["signals_total"] += 1

        now_ms = int(time.time() * 1000)
        log.info(
            "signal %s %s %s %s reason=%s price=%s confidence=%s grade=%s expires_ms=%s signal_id=%s",
            sig.symbol,
            sig.timeframe,
            sig.direction,
            sig.kind,
            sig.reason,
            sig.price,
            sig.confidence,
            sig.grade,
            signal_expires_at(sig, now_ms),
            sig.id,
        )

        if sig.kind == EXIT and not self.cfg.alerts.notify_exits:
            return True
        if not self.tg.enabled():
            return True

        parse_mode = getattr(self.cfg.alerts, "parse_mode", "HTML") or "HTML"
        msg = format_signal(sig, self.cfg.alerts, issued_ms=now_ms)
        await self.tg.send(msg, parse_mode=parse_mode)
        return True
