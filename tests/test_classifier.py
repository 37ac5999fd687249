from datetime import datetime

import pytest

from analyzer.classifier import classify, classify_reading, overall_tier
from analyzer.ranges import format_value, get_range
from common.models import Metric, SensorReading, Tier

T, H, A = Metric.TEMPERATURE, Metric.HUMIDITY, Metric.AMMONIA


@pytest.mark.parametrize("value, expected", [
    (18, Tier.NORMAL),
    (25, Tier.NORMAL),
    (25.01, Tier.WARNING),
    (17.99, Tier.WARNING),
    (30, Tier.WARNING),
    (30.01, Tier.CRITICAL),
    (0, Tier.WARNING),
    (-40, Tier.WARNING),
])
def test_temperature_bands(value, expected):
    assert classify(T, value) is expected


@pytest.mark.parametrize("value, expected", [
    (45, Tier.NORMAL),
    (65, Tier.NORMAL),
    (66.2, Tier.WARNING),
    (44.9, Tier.WARNING),
    (80, Tier.WARNING),
    (80.5, Tier.CRITICAL),
])
def test_humidity_bands(value, expected):
    assert classify(H, value) is expected


@pytest.mark.parametrize("value, expected", [
    (0, Tier.NORMAL),
    (20, Tier.NORMAL),
    (20.01, Tier.CRITICAL),
    (-3, Tier.NORMAL),
])
def test_ammonia_is_binary(value, expected):
    assert classify(A, value) is expected


def test_ammonia_never_warning():
    for i in range(-100, 1000):
        assert classify(A, i / 10.0) in (Tier.NORMAL, Tier.CRITICAL)


def test_classify_is_total_for_odd_floats():
    for metric in (T, H, A):
        for value in (float("inf"), float("-inf"), float("nan"), 1e308):
            assert classify(metric, value) in (Tier.NORMAL, Tier.WARNING, Tier.CRITICAL)
    assert classify(A, float("nan")) is Tier.CRITICAL


def test_missing_value_is_unavailable():
    assert classify(T, None) is Tier.UNAVAILABLE


def test_sentinel_reading_is_unavailable_not_warning():
    sentinel = SensorReading.sentinel(datetime(2024, 1, 1))
    assert set(classify_reading(sentinel).values()) == {Tier.UNAVAILABLE}
    assert overall_tier(sentinel) is Tier.UNAVAILABLE


def test_overall_tier_is_worst_metric():
    now = datetime(2024, 1, 1)
    assert overall_tier(SensorReading(22, 50, 5, now)) is Tier.NORMAL
    assert overall_tier(SensorReading(28, 50, 5, now)) is Tier.WARNING
    assert overall_tier(SensorReading(28, 50, 25, now)) is Tier.CRITICAL


def test_formatting_matches_dashboard():
    assert format_value(T, 33.44) == "33.4°C"
    assert format_value(H, 66.2) == "66.2%"
    assert format_value(A, 25.3) == "25.3 ppm"
    assert get_range(A).description == "0-20 ppm"
    assert get_range(T).description == "18-25°C"
