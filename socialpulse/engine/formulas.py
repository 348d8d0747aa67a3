"""
KPI formulas for social metrics.

Every ratio floors its denominator at 1 (or at a small epsilon where noted),
so no formula can raise or return NaN/Infinity for finite input. Ratios are
percentages; ``round_metric`` is applied when assembling response records.

Version: social_formulas_v1
"""

import math
from decimal import ROUND_HALF_UP, Decimal

REPUTATION_WEIGHT = 0.5
REACH_WEIGHT = 0.25
RISK_WEIGHT = 0.25

SOV_SOURCE_WEIGHT = 0.6
SOV_EXPOSURE_WEIGHT = 0.4

_CENT = Decimal("0.01")


def round_metric(value: float) -> float:
    """Round half-up to two decimals; non-finite input yields 0."""
    if value is None or not math.isfinite(value):
        return 0.0
    if abs(value) >= 1e15:
        return float(round(value, 2))
    return float(Decimal(repr(float(value))).quantize(_CENT, rounding=ROUND_HALF_UP))


def clamp(value: float, low: float, high: float) -> float:
    if math.isnan(value):
        return low
    return max(low, min(high, value))


def pct(numerator: float, denominator: float, floor: float = 1.0) -> float:
    """numerator / max(denominator, floor) * 100."""
    return numerator / max(denominator, floor) * 100


def er_global(engagement: float, exposure: float) -> float:
    return pct(engagement, exposure)


def ctr_denominator(impressions: float, reach: float, exposure: float) -> float:
    """Impressions if present, else reach, else exposure."""
    if impressions > 0:
        return impressions
    if reach > 0:
        return reach
    return exposure


def ctr(clicks: float, impressions: float, reach: float, exposure: float) -> float:
    return pct(clicks, ctr_denominator(impressions, reach, exposure))


def er_impressions(engagement: float, impressions: float, reach: float, exposure: float) -> float:
    return pct(engagement, ctr_denominator(impressions, reach, exposure))


def er_reach(engagement: float, reach: float, exposure: float) -> float:
    return pct(engagement, reach if reach > 0 else exposure)


def view_rate(views: float, exposure: float) -> float:
    return pct(views, exposure)


def interaction_shares(likes: float, comments: float, shares: float) -> tuple[float, float, float]:
    """(likes, comments, shares) as percentages of their sum."""
    base = likes + comments + shares
    return pct(likes, base), pct(comments, base), pct(shares, base)


def sentimiento_neto(positive: int, negative: int, classified: int) -> float:
    """Net sentiment in [-100, 100]."""
    return pct(positive - negative, classified)


def riesgo_activo(negative: int, classified: int) -> float:
    """Share of classified items that are negative, in [0, 100]."""
    return pct(negative, classified)


def social_health_score(
    sentiment_net: float,
    exposure_current: float,
    exposure_previous: float,
    risk: float,
) -> float:
    """
    Composite social health score (SHS) in [0, 100].

    Blends reputation (net sentiment recentred on 50), reach growth against
    the previous period (capped at 100) and the inverse of active risk.
    """
    reputation = clamp(50 + sentiment_net / 2, 0, 100)
    reach = clamp(pct(exposure_current, exposure_previous), 0, 100)
    risk_score = 100 - risk
    return REPUTATION_WEIGHT * reputation + REACH_WEIGHT * reach + RISK_WEIGHT * risk_score


def sov_contribution(source_score: float, exposure: float, max_exposure: float) -> float:
    """Share-of-voice weight of one row."""
    return SOV_SOURCE_WEIGHT * clamp(source_score, 0, 1) + SOV_EXPOSURE_WEIGHT * clamp(
        exposure / max(max_exposure, 1), 0, 1
    )


def progress_pct(current: float, target: float) -> float:
    """Progress towards a target; the target is floored at 0.001."""
    return pct(current, target, floor=0.001)
