from dataclasses import dataclass
from typing import Optional

from common.models import Metric


@dataclass(frozen=True)
class Range:
    """
    Safety bands for one metric.

    The normal band [normal_min, normal_max] is inclusive at both edges.
    A value outside it is a warning unless it is strictly above
    critical_above. Metrics without a warning tier set critical_above equal
    to normal_max, so leaving the normal band upward is immediately critical.
    """
    normal_min: float
    normal_max: float
    critical_above: float
    unit: str
    description: str

    @property
    def has_warning(self) -> bool:
        return self.critical_above > self.normal_max


RANGES = {
    Metric.TEMPERATURE: Range(
        normal_min=18.0, normal_max=25.0, critical_above=30.0, unit="°C", description="18-25°C"
    ),
    Metric.HUMIDITY: Range(
        normal_min=45.0, normal_max=65.0, critical_above=80.0, unit="%", description="45-65%"
    ),
    # No lower bound: a reading of 0 ppm is a valid, safe reading
    Metric.AMMONIA: Range(
        normal_min=float("-inf"), normal_max=20.0, critical_above=20.0, unit="ppm", description="0-20 ppm"
    ),
}


def get_range(metric: Metric) -> Range:
    return RANGES[metric]


def format_value(metric: Metric, value: Optional[float]) -> str:
    if value is None:
        return "—"
    unit = RANGES[metric].unit
    if unit == "ppm":
        return f"{value:.1f} {unit}"
    return f"{value:.1f}{unit}"
