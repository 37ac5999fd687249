import logging
import math
from datetime import datetime
from typing import Callable, Dict, List, Optional

import requests

from common.config import FARM_API_BASE_URL, FETCH_TIMEOUT_S
from common.errors import FetchFailure
from common.models import Farm, SensorReading


def _number(value) -> float:
    """Normalize a payload value; anything missing or non-numeric becomes 0."""
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(result) or math.isinf(result):
        return 0.0
    return result


def kandang_path(farm: Farm) -> str:
    name = farm.location or farm.name
    return name.replace(" ", "_")


class FarmApiClient:
    """
    Thin client over the farm telemetry API.

    - fetch_reading(): latest temperature/humidity/ammonia of one farm
    - fetch_farm_list(): the roster of the company the token belongs to
    """

    def __init__(
        self,
        base_url: str = FARM_API_BASE_URL,
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        clock: Callable[[], datetime] = datetime.now,
        path_overrides: Optional[Dict[int, str]] = None,
    ) -> None:
        self._logger = logging.getLogger("FarmApiClient")
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._session = session or requests.Session()
        self._clock = clock
        self._path_overrides = dict(path_overrides or {})

    def _headers(self) -> dict:
        if self._token:
            return {"Authorization": f"Bearer {self._token}"}
        return {}

    def _get_json(self, url: str, timeout: float):
        try:
            resp = self._session.get(url, headers=self._headers(), timeout=timeout)
        except requests.RequestException as e:
            raise FetchFailure(f"GET {url} failed: {e}") from e

        if resp.status_code != 200:
            raise FetchFailure(f"GET {url} returned {resp.status_code}")
        try:
            return resp.json()
        except ValueError as e:
            raise FetchFailure(f"GET {url} returned invalid JSON") from e

    def fetch_reading(self, farm: Farm, timeout: float = FETCH_TIMEOUT_S) -> SensorReading:
        path = self._path_overrides.get(farm.id) or kandang_path(farm)
        url = f"{self._base_url}/api/kandang/{path}"
        payload = self._get_json(url, timeout)

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise FetchFailure(f"Malformed payload for farm {farm.id}: missing 'data'")

        reading = SensorReading(
            temperature=_number(data.get("temperature")),
            humidity=_number(data.get("humidity")),
            ammonia=_number(data.get("ammonia")),
            observed_at=self._clock(),
        )
        self._logger.debug(
            f"Farm {farm.id}: T={reading.temperature:.1f}C, H={reading.humidity:.1f}%, "
            f"NH3={reading.ammonia:.1f}ppm"
        )
        return reading

    def fetch_farm_list(self, token: Optional[str] = None, timeout: float = FETCH_TIMEOUT_S) -> List[Farm]:
        if token:
            self._token = token
        url = f"{self._base_url}/api/auth/company/farms"
        payload = self._get_json(url, timeout)
        if not isinstance(payload, list):
            raise FetchFailure("Malformed farm list: expected a JSON array")

        farms = []
        for item in payload:
            try:
                farms.append(Farm.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                self._logger.warning(f"Skipping malformed farm entry {item!r}: {e}")
        return farms
