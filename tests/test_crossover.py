import pytest

from confluence_signals.crossover import (
    CROSS_DOWN,
    CROSS_UP,
    NEAR_CROSS,
    CrossoverDetector,
    crosses_down,
    crosses_up,
    required_cross_price,
)
from confluence_signals.indicators import ema_next
from confluence_signals.models import LONG, SHORT, IndicatorSnapshot


def _snap(**kw) -> IndicatorSnapshot:
    base = dict(
        time=0,
        close=100.0,
        ema_now=100.0,
        ema_prev=100.0,
        sma_now=100.0,
        sma_prev=100.0,
        close_leaving=100.0,
        atr=1.0,
        volume_ratio=1.0,
        hvp=50.0,
        hvp_sma=50.0,
        stoch_k_now=50.0,
        stoch_k_prev=50.0,
        stoch_d_now=50.0,
        stoch_d_prev=50.0,
        plus_di=20.0,
        minus_di=20.0,
        adx=20.0,
    )
    base.update(kw)
    return IndicatorSnapshot(**base)


DET = CrossoverDetector(ema_fast=21, sma_slow=200, predictive_buffer=0.001)


def test_crosses_helpers_handle_missing_values():
    assert crosses_up(1.0, 3.0, 2.0, 2.0) is True
    assert crosses_down(3.0, 1.0, 2.0, 2.0) is True
    assert crosses_up(None, 3.0, 2.0, 2.0) is False
    assert crosses_down(3.0, None, 2.0, 2.0) is False


def test_bullish_cross():
    r = DET.detect(_snap(ema_prev=99.0, ema_now=101.0))
    assert r.state == CROSS_UP
    assert r.direction == LONG
    assert r.bullish_cross and not r.bearish_cross and not r.pre_cross


def test_bearish_cross():
    r = DET.detect(_snap(ema_prev=101.0, ema_now=99.0))
    assert r.state == CROSS_DOWN
    assert r.direction == SHORT


def test_touch_without_crossing_is_not_a_cross():
    r = DET.detect(_snap(ema_prev=99.0, ema_now=100.0, close=50.0))
    assert r.state is None


def test_actual_crosses_are_mutually_exclusive():
    grid = [98.0, 99.0, 100.0, 101.0, 102.0]
    for ep in grid:
        for en in grid:
            for sp in grid:
                for sn in grid:
                    up = crosses_up(ep, en, sp, sn) and en > sn
                    down = crosses_down(ep, en, sp, sn) and en < sn
                    assert not (up and down)


def test_required_cross_price_equalizes_next_bar():
    ema_now, sma_now, leaving = 99.0, 100.0, 100.0
    p = required_cross_price(ema_now, sma_now, leaving, 21, 200)
    assert p is not None
    ema_next_val = ema_next(ema_now, p, 21)
    sma_next_val = sma_now + (p - leaving) / 200.0
    assert ema_next_val == pytest.approx(sma_next_val)


def test_required_cross_price_degenerate_slopes():
    # alpha == 1/N when fast = 2N - 1
    assert required_cross_price(99.0, 100.0, 100.0, 3, 2) is None


def test_bullish_pre_cross_near_required_price():
    p = required_cross_price(99.0, 100.0, 100.0, 21, 200)
    r = DET.detect(_snap(ema_prev=98.0, ema_now=99.0, close=p))
    assert r.state == NEAR_CROSS
    assert r.direction == LONG
    assert r.required_cross_price == pytest.approx(p)

    r = DET.detect(_snap(ema_prev=98.0, ema_now=99.0, close=p * 0.98))
    assert r.state is None


def test_bullish_pre_cross_needs_converging_gap():
    p = required_cross_price(99.0, 100.0, 100.0, 21, 200)
    r = DET.detect(_snap(ema_prev=99.5, ema_now=99.0, close=p))
    assert r.state is None


def test_bearish_pre_cross():
    p = required_cross_price(101.0, 100.0, 100.0, 21, 200)
    r = DET.detect(_snap(ema_prev=102.0, ema_now=101.0, close=p))
    assert r.state == NEAR_CROSS
    assert r.direction == SHORT

    r = DET.detect(_snap(ema_prev=102.0, ema_now=101.0, close=p * 1.02))
    assert r.state is None


def test_actual_cross_wins_over_pre_cross():
    r = DET.detect(_snap(ema_prev=99.0, ema_now=100.5, close=1000.0))
    assert r.state == CROSS_UP
