import logging
import threading
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from common.config import (
    DEFAULT_FAN_START_HZ,
    FARM_API_BASE_URL,
    FARM_API_TOKEN,
    FETCH_TIMEOUT_S,
    HTTP_HOST,
    HTTP_PORT,
    LOG_LEVEL,
    MAX_CONCURRENT_FETCHES,
    POLL_INTERVAL_S,
    ROSTER_REFRESH_S,
    get_config,
    load_system_config,
)
from common.errors import FetchFailure
from common.models import Actuator, AlertSummary, ControlState, Farm, FarmReading, SystemOverview
from analyzer.aggregator import summarize
from executor.control_store import ControlListener, ControlStateStore
from monitor.fetcher import FarmApiClient
from monitor.orchestrator import AlertListener, PollingOrchestrator, SnapshotListener


class FarmMonitorService:
    """
    Facade the presentation layer talks to.

    Owns the polling orchestrator and the control state store, keeps the
    store's farm set in step with the roster, and re-reads the roster from
    the farm API every `roster_refresh_s` seconds.
    """

    def __init__(
        self,
        api: FarmApiClient,
        orchestrator: PollingOrchestrator,
        store: ControlStateStore,
        token: Optional[str] = None,
        fallback_farms: Sequence[Farm] = (),
        roster_refresh_s: float = ROSTER_REFRESH_S,
    ) -> None:
        self._logger = logging.getLogger("FarmMonitorService")
        self.api = api
        self.orchestrator = orchestrator
        self.store = store
        self._token = token
        self._fallback_farms = tuple(fallback_farms)
        self._roster_refresh_s = roster_refresh_s
        self._roster = ()
        self._stop_event = threading.Event()
        self._roster_thread = None

    # ---- roster ----

    def load_roster(self) -> List[Farm]:
        """
        Fetch the company roster and apply it. On failure keep the current
        roster, or fall back to the statically configured farms if none was
        loaded yet.
        """
        try:
            farms = self.api.fetch_farm_list(self._token)
        except FetchFailure as e:
            if self._roster:
                self._logger.warning(f"Roster refresh failed, keeping current roster: {e}")
                return list(self._roster)
            self._logger.warning(f"Roster fetch failed, using configured farms: {e}")
            farms = list(self._fallback_farms)
        self.apply_roster(farms)
        return farms

    def apply_roster(self, farms: Sequence[Farm]) -> None:
        farms = tuple(farms)
        if farms == self._roster:
            return
        added = {f.id for f in farms} - {f.id for f in self._roster}
        removed = {f.id for f in self._roster} - {f.id for f in farms}
        self._roster = farms
        self.store.sync(f.id for f in farms)
        self.orchestrator.set_farms(farms)
        self._logger.info(f"Active farms: {[f.id for f in farms]} (added={sorted(added)}, removed={sorted(removed)})")

    def roster(self) -> List[Farm]:
        return list(self._roster)

    def _watch_roster(self) -> None:
        while not self._stop_event.wait(self._roster_refresh_s):
            self.load_roster()

    # ---- lifecycle ----

    def start(self) -> None:
        self.load_roster()
        self.orchestrator.start()
        if self._roster_refresh_s > 0:
            self._roster_thread = threading.Thread(target=self._watch_roster, name="roster-watch", daemon=True)
            self._roster_thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        self.orchestrator.stop()

    # ---- telemetry ----

    def subscribe_to_alerts(self, callback: AlertListener) -> None:
        self.orchestrator.subscribe_to_alerts(callback)

    def subscribe_to_farm_snapshot(self, callback: SnapshotListener) -> None:
        self.orchestrator.subscribe_to_farm_snapshot(callback)

    def farm_snapshot(self) -> List[FarmReading]:
        return self.orchestrator.latest_snapshot()

    def alerts(self) -> AlertSummary:
        return self.orchestrator.latest_alerts()

    def overview(self) -> SystemOverview:
        snapshot = self.orchestrator.latest_snapshot()
        return summarize([item.farm for item in snapshot], {item.farm.id: item.reading for item in snapshot})

    def refresh_now(self) -> bool:
        return self.orchestrator.refresh_now()

    def set_auto_refresh(self, enabled: bool) -> None:
        self.orchestrator.set_auto_refresh(enabled)

    # ---- controls ----

    def subscribe_to_controls(self, callback: ControlListener) -> None:
        self.store.subscribe(callback)

    def get_control_state(self, farm_id: int) -> ControlState:
        return self.store.get(farm_id)

    def toggle(self, farm_id: int, actuator: Actuator) -> ControlState:
        return self.store.toggle(farm_id, actuator)

    def set_fan_frequency(self, farm_id: int, hz) -> ControlState:
        return self.store.set_fan_frequency(farm_id, hz)


def build_service(
    system_config: dict,
    clock: Callable[[], datetime] = datetime.now,
    api: Optional[FarmApiClient] = None,
) -> FarmMonitorService:
    """Wire the service from environment settings and system_config.json."""
    fallback_farms = []
    for item in system_config.get("farms", []):
        try:
            fallback_farms.append(Farm.from_dict(item))
        except (KeyError, TypeError, ValueError) as e:
            logging.getLogger("FarmMonitorService").warning(f"Ignoring configured farm {item!r}: {e}")

    overrides = {}
    for farm in fallback_farms:
        path = get_config("kandang", system_config, farm.id)
        if path:
            overrides[farm.id] = path

    token = get_config("api_token", system_config, default=FARM_API_TOKEN)
    if api is None:
        api = FarmApiClient(
            base_url=get_config("api_base_url", system_config, default=FARM_API_BASE_URL),
            token=token,
            clock=clock,
            path_overrides=overrides,
        )

    orchestrator = PollingOrchestrator(
        fetch_reading=api.fetch_reading,
        interval_s=float(get_config("poll_interval_s", system_config, default=POLL_INTERVAL_S)),
        fetch_timeout_s=float(get_config("fetch_timeout_s", system_config, default=FETCH_TIMEOUT_S)),
        max_concurrent_fetches=int(
            get_config("max_concurrent_fetches", system_config, default=MAX_CONCURRENT_FETCHES)
        ),
        clock=clock,
        auto_refresh=bool(get_config("auto_refresh", system_config, default=True)),
    )
    store = ControlStateStore(
        clock=clock,
        fan_start_hz=float(get_config("fan_start_hz", system_config, default=DEFAULT_FAN_START_HZ)),
    )
    return FarmMonitorService(
        api=api,
        orchestrator=orchestrator,
        store=store,
        token=token,
        fallback_farms=fallback_farms,
        roster_refresh_s=float(get_config("roster_refresh_s", system_config, default=ROSTER_REFRESH_S)),
    )


def _attach_mqtt(service: FarmMonitorService) -> None:
    from common.mqtt_utils import create_mqtt_client
    from executor.executor_service import MqttRelay

    logger = logging.getLogger("FarmMonitorService")
    try:
        client = create_mqtt_client("farm-monitor")
    except OSError as e:
        logger.error(f"MQTT unavailable, not relaying: {e}")
        return
    client.loop_start()
    relay = MqttRelay(client)
    service.subscribe_to_farm_snapshot(relay.on_snapshot)
    service.subscribe_to_alerts(relay.on_alerts)
    service.subscribe_to_controls(relay.on_control_change)
    logger.info("Relaying farm state to MQTT")


def _attach_knowledge(service: FarmMonitorService) -> None:
    from common.knowledge import KnowledgeStore

    ks = KnowledgeStore()
    service.subscribe_to_controls(ks.log_control_change)
    logging.getLogger("FarmMonitorService").info("Logging control changes to InfluxDB")


def start_monitor():
    from common.influx_utils import influx_configured
    from common.mqtt_utils import mqtt_enabled
    from dashboard.app import create_app

    logging.basicConfig(level=LOG_LEVEL)
    logger = logging.getLogger("FarmMonitorService")
    logger.info("Starting farm monitor...")

    service = build_service(load_system_config())
    if mqtt_enabled():
        _attach_mqtt(service)
    if influx_configured():
        _attach_knowledge(service)

    service.start()
    app = create_app(service)
    try:
        app.run(host=HTTP_HOST, port=HTTP_PORT)
    finally:
        service.stop()


if __name__ == "__main__":
    start_monitor()
