from datetime import datetime

from analyzer.aggregator import aggregate, summarize
from common.models import AlertRecord, Farm, Metric, SensorReading, Tier

NOW = datetime(2024, 5, 1, 12, 0, 0)

FARM_1 = Farm(id=1, name="Kandang 1", location="Kandang 1")
FARM_2 = Farm(id=2, name="Kandang 2", location="Kandang 2")
FARM_3 = Farm(id=3, name="Kandang 3", location="Kandang 3")


def _keys(records):
    return [(r.farm_id, r.metric) for r in records]


def test_two_farm_scenario():
    readings = {
        1: SensorReading(28.0, 66.2, 4.8, NOW),
        2: SensorReading(33.4, 66.2, 25.3, NOW),
    }
    alerts = aggregate([FARM_1, FARM_2], readings)

    assert _keys(alerts.criticals) == [(2, Metric.TEMPERATURE), (2, Metric.AMMONIA)]
    # 28 °C is outside 18-25 and not above 30, so it is a warning
    assert _keys(alerts.warnings) == [
        (1, Metric.TEMPERATURE),
        (1, Metric.HUMIDITY),
        (2, Metric.HUMIDITY),
    ]
    assert (1, Metric.AMMONIA) not in _keys(alerts.warnings + alerts.criticals)
    assert alerts.unavailable == []


def test_records_are_display_ready():
    alerts = aggregate([FARM_2], {2: SensorReading(33.4, 66.2, 25.3, NOW)})
    assert alerts.criticals[0] == AlertRecord(
        farm_id=2,
        farm_name="Kandang 2",
        metric=Metric.TEMPERATURE,
        tier=Tier.CRITICAL,
        formatted_value="33.4°C",
        threshold_description="18-25°C",
    )
    assert alerts.criticals[1].formatted_value == "25.3 ppm"
    assert alerts.warnings[0].threshold_description == "45-65%"


def test_order_is_farm_then_metric_not_severity():
    readings = {
        1: SensorReading(35.0, 90.0, 50.0, NOW),
        2: SensorReading(31.0, 81.0, 21.0, NOW),
    }
    alerts = aggregate([FARM_2, FARM_1], readings)
    assert _keys(alerts.criticals) == [
        (2, Metric.TEMPERATURE), (2, Metric.HUMIDITY), (2, Metric.AMMONIA),
        (1, Metric.TEMPERATURE), (1, Metric.HUMIDITY), (1, Metric.AMMONIA),
    ]


def test_aggregate_is_idempotent():
    readings = {
        1: SensorReading(28.0, 66.2, 4.8, NOW),
        2: SensorReading(33.4, 66.2, 25.3, NOW),
    }
    first = aggregate([FARM_1, FARM_2], readings)
    second = aggregate([FARM_1, FARM_2], readings)
    assert first == second
    assert first is not second


def test_farm_without_reading_is_skipped():
    alerts = aggregate([FARM_1, FARM_2], {2: SensorReading(33.4, 50.0, 5.0, NOW)})
    assert _keys(alerts.criticals) == [(2, Metric.TEMPERATURE)]
    assert alerts.warnings == []


def test_sentinel_reading_goes_to_unavailable():
    readings = {
        1: SensorReading.sentinel(NOW),
        3: SensorReading(22.0, 50.0, 0.0, NOW),
    }
    alerts = aggregate([FARM_1, FARM_3], readings)
    assert alerts.warnings == []
    assert alerts.criticals == []
    assert _keys(alerts.unavailable) == [
        (1, Metric.TEMPERATURE), (1, Metric.HUMIDITY), (1, Metric.AMMONIA),
    ]
    assert alerts.unavailable[0].formatted_value == "—"


def test_genuine_zero_ammonia_is_safe():
    alerts = aggregate([FARM_3], {3: SensorReading(22.0, 50.0, 0.0, NOW)})
    assert alerts.warnings == [] and alerts.criticals == [] and alerts.unavailable == []


def test_summarize_counts_sensors_and_alerts():
    readings = {
        1: SensorReading(22.0, 50.0, 5.0, NOW),
        2: SensorReading(33.4, 66.2, 25.3, NOW),
        3: SensorReading.sentinel(NOW),
    }
    overview = summarize([FARM_1, FARM_2, FARM_3], readings)
    assert overview.active_farms == 3
    assert overview.total_sensors == 9
    assert overview.normal_readings == 3
    assert overview.alert_count == 3
    assert overview.unavailable_readings == 3
    assert overview.status == "warning"


def test_summarize_all_normal_is_optimal():
    overview = summarize([FARM_1], {1: SensorReading(22.0, 50.0, 5.0, NOW)})
    assert overview.status == "optimal"
    assert overview.alert_count == 0
    assert overview.unavailable_readings == 0


def test_summarize_unreachable_farm_is_not_an_alert_but_not_optimal():
    overview = summarize([FARM_1, FARM_3], {1: SensorReading(22.0, 50.0, 5.0, NOW), 3: SensorReading.sentinel(NOW)})
    assert overview.alert_count == 0
    assert overview.unavailable_readings == 3
    assert overview.normal_readings == 3
    assert overview.status == "warning"
