# executor/executor_service.py
import json
import logging
from typing import List

from common.config import MQTT_TOPIC_PREFIX
from common.models import Actuator, AlertSummary, ControlState, FarmReading
from analyzer.classifier import classify_reading, overall_tier


def status_payload(item: FarmReading) -> dict:
    reading = item.reading
    tiers = classify_reading(reading)
    return {
        "farm_id": item.farm.id,
        "name": item.farm.name,
        "location": item.farm.location,
        "temperature": reading.temperature,
        "humidity": reading.humidity,
        "ammonia": reading.ammonia,
        "available": reading.available,
        "observed_at": reading.observed_at.isoformat(),
        "tiers": {metric.value: tier.value for metric, tier in tiers.items()},
        "status": overall_tier(reading).value,
    }


class MqttRelay:
    """
    Mirrors everything the core publishes onto MQTT.

    Topics:
      <prefix>/alerts               alert summary of the last cycle
      <prefix>/<farm_id>/status     latest reading with its tiers
      <prefix>/<farm_id>/controls   control state after each change
    """

    def __init__(self, client, prefix: str = MQTT_TOPIC_PREFIX) -> None:
        self._logger = logging.getLogger("MqttRelay")
        self._client = client
        self._prefix = prefix

    def _publish(self, topic: str, payload: dict) -> None:
        try:
            self._client.publish(topic, json.dumps(payload))
            self._logger.debug(f"Published to {topic}")
        except Exception as e:
            self._logger.error(f"Publish to {topic} failed: {e}")

    def on_snapshot(self, snapshot: List[FarmReading]) -> None:
        for item in snapshot:
            self._publish(f"{self._prefix}/{item.farm.id}/status", status_payload(item))

    def on_alerts(self, alerts: AlertSummary) -> None:
        self._publish(f"{self._prefix}/alerts", alerts.to_dict())

    def on_control_change(self, farm_id: int, actuator: Actuator, state: ControlState) -> None:
        payload = state.to_dict()
        payload["farm_id"] = farm_id
        payload["changed"] = actuator.value
        self._publish(f"{self._prefix}/{farm_id}/controls", payload)
