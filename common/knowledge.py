# common/knowledge.py
import logging
from typing import Optional

from influxdb_client import InfluxDBClient, Point
from influxdb_client.client.write_api import SYNCHRONOUS

from common.config import ACTUATOR_MEASUREMENT
from common.influx_utils import INFLUXDB_BUCKET, INFLUXDB_ORG, create_influx_client
from common.models import Actuator, ControlState


class KnowledgeStore:
    """
    Audit trail of actuator changes in InfluxDB.

    Only control mutations are written here. Sensor readings are not kept;
    the telemetry API is the source of truth for those.
    """

    def __init__(
        self,
        client: Optional[InfluxDBClient] = None,
        bucket: str = INFLUXDB_BUCKET,
        org: Optional[str] = INFLUXDB_ORG,
    ) -> None:
        self._logger = logging.getLogger("KnowledgeStore")
        self._client: InfluxDBClient = client or create_influx_client()
        self._write_api = self._client.write_api(write_options=SYNCHRONOUS)
        self._bucket = bucket
        self._org = org

    def log_control_change(self, farm_id: int, actuator: Actuator, state: ControlState) -> None:
        """
        Store one actuator change.

        The point carries the actuator's on/off state, the fan frequency for
        fan changes, and the timestamp the control store stamped.
        """
        on = state.is_on(actuator)
        point = (
            Point(ACTUATOR_MEASUREMENT)
            .tag("farm", str(farm_id))
            .tag("actuator", actuator.value)
            .field("state", "ON" if on else "OFF")
            .field("on", 1 if on else 0)
        )
        if actuator is Actuator.FAN:
            point = point.field("frequency_hz", float(state.fan_frequency_hz))

        changed_at = state.last_changed.get(actuator)
        if changed_at is not None:
            point = point.time(changed_at)

        try:
            self._write_api.write(bucket=self._bucket, org=self._org, record=point)
        except Exception as e:
            self._logger.error(f"Failed to log {actuator.value} change for farm {farm_id}: {e}")

    def close(self) -> None:
        self._write_api.close()
        self._client.close()
