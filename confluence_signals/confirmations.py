from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from .config import Options
from .crossover import crosses_down, crosses_up
from .models import IndicatorSnapshot, LONG, SHORT


@dataclass(frozen=True)
class Confirmations:
    direction: str
    volume: bool
    volume_spike: bool
    grind: bool  # volume passed only through the low-volume short exception
    volatility: bool
    stoch: bool
    dmi: bool

    def passed(self) -> Tuple[str, ...]:
        names = []
        if self.volume_spike:
            names.append("volume_spike")
        if self.grind:
            names.append("short_grind")
        if self.volatility:
            names.append("volatility")
        if self.stoch:
            names.append("stoch")
        if self.dmi:
            names.append("dmi")
        return tuple(names)


class ConfirmationEngine:
    """Evaluates every corroborating condition for one direction, no short-circuit."""

    def __init__(self, options: Options):
        self.o = options

    def volatility_ok(self, snap: IndicatorSnapshot) -> bool:
        if snap.hvp is None:
            return False
        if snap.hvp > 50:
            return True
        return snap.hvp_sma is not None and snap.hvp > snap.hvp_sma

    def stoch_ok(self, snap: IndicatorSnapshot, direction: str) -> bool:
        k_now = snap.stoch_k_now
        if k_now is None:
            return False
        if direction == LONG:
            return crosses_up(snap.stoch_k_prev, k_now, snap.stoch_d_prev, snap.stoch_d_now) and k_now < self.o.stoch_upper
        return crosses_down(snap.stoch_k_prev, k_now, snap.stoch_d_prev, snap.stoch_d_now) and k_now > self.o.stoch_lower

    def dmi_ok(self, snap: IndicatorSnapshot, direction: str) -> bool:
        if snap.plus_di is None or snap.minus_di is None or snap.adx is None:
            return False
        if snap.adx <= self.o.adx_threshold:
            return False
        if direction == LONG:
            return snap.plus_di > snap.minus_di
        return snap.minus_di > snap.plus_di

    def evaluate(self, snap: IndicatorSnapshot, direction: str) -> Confirmations:
        ratio = snap.volume_ratio
        spike = ratio is not None and ratio > self.o.volume_spike_ratio
        volatility = self.volatility_ok(snap)
        stoch = self.stoch_ok(snap, direction)
        dmi = self.dmi_ok(snap, direction)

        # Grind-down exception is SHORT only.
        grind = bool(
            direction == SHORT
            and self.o.enable_short_grind
            and not spike
            and ratio is not None
            and ratio < self.o.grind_volume_ratio
            and dmi
            and volatility
        )

        return Confirmations(
            direction=direction,
            volume=spike or grind,
            volume_spike=spike,
            grind=grind,
            volatility=volatility,
            stoch=stoch,
            dmi=dmi,
        )
