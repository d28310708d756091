from __future__ import annotations

import argparse
import logging

from confluence_signals.config import Options
from confluence_signals.models import SymbolInput
from confluence_signals.providers.synthetic import SyntheticCandleSource
from confluence_signals.strategy import SignalEngine


def replay(symbol: str, timeframe: str, bars: int, seed: int, variant: str) -> None:
    """Walk a synthetic series bar by bar, the way a poller would see it."""
    opts = Options(variant=variant)
    eng = SignalEngine(opts)
    need = opts.min_candles()
    candles = SyntheticCandleSource(seed=seed).generate(symbol, timeframe, need + bars)

    entries = exits = 0
    for n in range(need, len(candles) + 1):
        for sig in eng.generate_signals(SymbolInput(symbol, timeframe, candles[:n])):
            if sig.kind == "ENTRY":
                entries += 1
            else:
                exits += 1
            print(sig.id, sig.reason, f"price={sig.price:.2f}", f"confidence={sig.confidence}", f"grade={sig.grade}")

    print(f"{symbol} {timeframe} variant={variant}: bars={bars} entries={entries} exits={exits} "
          f"suppressed={eng.suppressed_total}")


def main():
    p = argparse.ArgumentParser(description="Replay the signal engine over synthetic candles")
    p.add_argument("--symbol", default="BTCUSDT")
    p.add_argument("--timeframe", default="1h")
    p.add_argument("--bars", type=int, default=500)
    p.add_argument("--seed", type=int, default=7)
    p.add_argument("--variant", default="confluence", choices=["confluence", "trending", "ranging"])
    args = p.parse_args()
    logging.basicConfig(level=logging.WARNING, format="%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    replay(args.symbol, args.timeframe, args.bars, args.seed, args.variant)


if __name__ == "__main__":
    main()
