from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

CONFIDENCE_MIN = 70
CONFIDENCE_MAX = 95


def _clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def grade_for(confidence: int) -> str:
    if confidence >= 90:
        return "A+"
    if confidence >= 85:
        return "A"
    if confidence >= 80:
        return "B"
    return "C"


@dataclass(frozen=True)
class Score:
    confidence: int
    grade: str
    breakdown: str


class ConfidenceScorer:
    """Bounded 70..95 confidence from volume, volatility and confirmations."""

    def score(
        self,
        *,
        volume_ratio: Optional[float],
        hvp: Optional[float],
        stoch_confirmed: bool,
        dmi_confirmed: bool,
        used_pre_cross: bool,
    ) -> Score:
        vr = volume_ratio if volume_ratio is not None else 0.0
        hv = hvp if hvp is not None else 0.0
        b = []

        volume_bonus = _clamp((vr - 1.5) * 10.0, 0.0, 15.0)
        b.append(f"Volume ratio {vr:.2f}x (+{volume_bonus:.1f})")

        volatility_bonus = _clamp((hv - 50.0) / 5.0, 0.0, 10.0)
        b.append(f"HVP {hv:.1f} (+{volatility_bonus:.1f})")

        stoch_bonus = 3 if stoch_confirmed else 0
        b.append(f"Stoch confirmed (+{stoch_bonus})" if stoch_confirmed else "Stoch not confirmed (+0)")

        dmi_bonus = 2 if dmi_confirmed else 0
        b.append(f"DMI confirmed (+{dmi_bonus})" if dmi_confirmed else "DMI not confirmed (+0)")

        timeliness_bonus = 5 if (used_pre_cross and vr >= 1.5 and hv >= 50) else 0
        if used_pre_cross:
            b.append(f"Pre-cross timeliness (+{timeliness_bonus})")

        raw = CONFIDENCE_MIN + volume_bonus + volatility_bonus + stoch_bonus + dmi_bonus + timeliness_bonus
        # Halves round up.
        confidence = int(_clamp(math.floor(raw + 0.5), CONFIDENCE_MIN, CONFIDENCE_MAX))
        return Score(confidence=confidence, grade=grade_for(confidence), breakdown="\n".join(b))
