from typing import Iterable, List, Mapping

from common.models import (
    METRICS,
    AlertRecord,
    AlertSummary,
    Farm,
    SensorReading,
    SystemOverview,
    Tier,
)
from analyzer.classifier import classify_reading
from analyzer.ranges import format_value, get_range


def _record(farm: Farm, reading: SensorReading, metric, tier: Tier) -> AlertRecord:
    value = reading.value(metric) if reading.available else None
    return AlertRecord(
        farm_id=farm.id,
        farm_name=farm.name,
        metric=metric,
        tier=tier,
        formatted_value=format_value(metric, value),
        threshold_description=get_range(metric).description,
    )


def aggregate(farms: Iterable[Farm], readings: Mapping[int, SensorReading]) -> AlertSummary:
    """
    Classify every farm's current reading and partition the results.

    Records come out in farm order, then metric order (temperature,
    humidity, ammonia). They are not sorted by severity or magnitude.
    Farms without an entry in `readings` are skipped. Sentinel readings go
    to `unavailable` and never produce a warning or critical record.
    """
    warnings: List[AlertRecord] = []
    criticals: List[AlertRecord] = []
    unavailable: List[AlertRecord] = []

    for farm in farms:
        reading = readings.get(farm.id)
        if reading is None:
            continue

        tiers = classify_reading(reading)
        for metric in METRICS:
            tier = tiers[metric]
            if tier is Tier.WARNING:
                warnings.append(_record(farm, reading, metric, tier))
            elif tier is Tier.CRITICAL:
                criticals.append(_record(farm, reading, metric, tier))
            elif tier is Tier.UNAVAILABLE:
                unavailable.append(_record(farm, reading, metric, tier))

    return AlertSummary(warnings=warnings, criticals=criticals, unavailable=unavailable)


def summarize(farms: Iterable[Farm], readings: Mapping[int, SensorReading]) -> SystemOverview:
    """
    System overview counters. Warnings and criticals count as alerts;
    readings of farms that could not be fetched are counted apart. Either
    kind makes the status "warning".
    """
    farms = list(farms)
    total = 0
    normal = 0
    unavailable = 0
    for farm in farms:
        reading = readings.get(farm.id)
        if reading is None:
            continue
        tiers = classify_reading(reading)
        total += len(tiers)
        normal += sum(1 for t in tiers.values() if t is Tier.NORMAL)
        unavailable += sum(1 for t in tiers.values() if t is Tier.UNAVAILABLE)

    alert_count = total - normal - unavailable
    return SystemOverview(
        active_farms=len(farms),
        total_sensors=total,
        normal_readings=normal,
        alert_count=alert_count,
        unavailable_readings=unavailable,
        status="optimal" if alert_count == 0 and unavailable == 0 else "warning",
    )
