from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional


class Metric(Enum):
    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
    AMMONIA = "ammonia"


# Iteration order used everywhere alerts are produced
METRICS = (Metric.TEMPERATURE, Metric.HUMIDITY, Metric.AMMONIA)


class Tier(Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"
    UNAVAILABLE = "unavailable"


class Actuator(Enum):
    FAN = "fan"
    FEEDER = "feeder"
    COOLING_PAD_1 = "cooling_pad_1"
    COOLING_PAD_2 = "cooling_pad_2"


@dataclass(frozen=True)
class Farm:
    id: int
    name: str
    location: str = ""
    fan_count: int = 0
    company_id: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Farm":
        return cls(
            id=int(data["id"]),
            name=str(data.get("name", "")),
            location=str(data.get("location") or ""),
            fan_count=int(data.get("fan_count") or 0),
            company_id=data.get("company_id"),
        )


@dataclass(frozen=True)
class SensorReading:
    temperature: float
    humidity: float
    ammonia: float
    observed_at: datetime
    # False for the placeholder substituted when a fetch fails
    available: bool = True

    @classmethod
    def sentinel(cls, observed_at: datetime) -> "SensorReading":
        return cls(0.0, 0.0, 0.0, observed_at, available=False)

    def value(self, metric: Metric) -> float:
        if metric is Metric.TEMPERATURE:
            return self.temperature
        if metric is Metric.HUMIDITY:
            return self.humidity
        return self.ammonia


@dataclass(frozen=True)
class FarmReading:
    farm: Farm
    reading: SensorReading


@dataclass(frozen=True)
class AlertRecord:
    farm_id: int
    farm_name: str
    metric: Metric
    tier: Tier
    formatted_value: str
    threshold_description: str

    def to_dict(self) -> dict:
        return {
            "farm_id": self.farm_id,
            "farm_name": self.farm_name,
            "metric": self.metric.value,
            "tier": self.tier.value,
            "value": self.formatted_value,
            "threshold": self.threshold_description,
        }


@dataclass(frozen=True)
class AlertSummary:
    warnings: List[AlertRecord] = field(default_factory=list)
    criticals: List[AlertRecord] = field(default_factory=list)
    unavailable: List[AlertRecord] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "warnings": [a.to_dict() for a in self.warnings],
            "criticals": [a.to_dict() for a in self.criticals],
            "unavailable": [a.to_dict() for a in self.unavailable],
        }


@dataclass(frozen=True)
class SystemOverview:
    active_farms: int
    total_sensors: int
    normal_readings: int
    alert_count: int
    unavailable_readings: int
    status: str


@dataclass
class ControlState:
    fan_on: bool = False
    fan_frequency_hz: float = 0.0
    feeder_on: bool = False
    cooling_pad1_on: bool = False
    cooling_pad2_on: bool = False
    last_changed: Dict[Actuator, datetime] = field(default_factory=dict)

    def copy(self) -> "ControlState":
        return replace(self, last_changed=dict(self.last_changed))

    def is_on(self, actuator: Actuator) -> bool:
        if actuator is Actuator.FAN:
            return self.fan_on
        if actuator is Actuator.FEEDER:
            return self.feeder_on
        if actuator is Actuator.COOLING_PAD_1:
            return self.cooling_pad1_on
        if actuator is Actuator.COOLING_PAD_2:
            return self.cooling_pad2_on
        raise ValueError(f"Unknown actuator {actuator!r}")

    def to_dict(self) -> dict:
        return {
            "fan_on": self.fan_on,
            "fan_frequency_hz": self.fan_frequency_hz,
            "feeder_on": self.feeder_on,
            "cooling_pad1_on": self.cooling_pad1_on,
            "cooling_pad2_on": self.cooling_pad2_on,
            "last_changed": {a.value: ts.isoformat() for a, ts in self.last_changed.items()},
        }
