from typing import Dict, Optional

from common.models import METRICS, Metric, SensorReading, Tier
from analyzer.ranges import get_range

# Ranking used to pick the worst tier of a farm
_SEVERITY = {
    Tier.NORMAL: 0,
    Tier.UNAVAILABLE: 1,
    Tier.WARNING: 2,
    Tier.CRITICAL: 3,
}


def classify(metric: Metric, value: Optional[float]) -> Tier:
    """
    Map a single metric value to its severity tier.

    Normal band edges are inclusive and take precedence; the critical bound
    is strict. A value of None means the reading is unavailable. NaN matches
    no band and falls through to the warning tier, or critical for metrics
    without one.
    """
    if value is None:
        return Tier.UNAVAILABLE

    r = get_range(metric)
    if r.normal_min <= value <= r.normal_max:
        return Tier.NORMAL
    if value > r.critical_above:
        return Tier.CRITICAL
    if r.has_warning:
        return Tier.WARNING
    # Below the floor of a metric without a warning tier can only be reached
    # by NaN, since the floor is -inf.
    return Tier.CRITICAL


def classify_reading(reading: SensorReading) -> Dict[Metric, Tier]:
    if not reading.available:
        return {metric: Tier.UNAVAILABLE for metric in METRICS}
    return {metric: classify(metric, reading.value(metric)) for metric in METRICS}


def overall_tier(reading: SensorReading) -> Tier:
    """Worst tier across the three metrics of a reading."""
    tiers = classify_reading(reading).values()
    return max(tiers, key=lambda t: _SEVERITY[t])
