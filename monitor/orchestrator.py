import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Iterable, List, Tuple

from common.config import FETCH_TIMEOUT_S, MAX_CONCURRENT_FETCHES, POLL_INTERVAL_S
from common.models import AlertSummary, Farm, FarmReading, SensorReading
from analyzer.aggregator import aggregate

FetchReading = Callable[[Farm, float], SensorReading]
SnapshotListener = Callable[[List[FarmReading]], None]
AlertListener = Callable[[AlertSummary], None]


class Lifecycle(Enum):
    INIT = "init"
    RUNNING = "running"
    STOPPED = "stopped"


class CycleState(Enum):
    IDLE = "idle"
    FETCHING = "fetching"


class PollingOrchestrator:
    """
    Periodically fetches every farm's reading and republishes the result.

    One scheduler thread starts cycles every `interval_s` while auto refresh
    is enabled. A cycle fans out one fetch per farm on a bounded pool and
    waits up to `fetch_timeout_s` for them. Every fetch that failed or timed
    out is replaced by a sentinel reading, as is a farm whose fetch from an
    earlier cycle is still running. The complete reading set is swapped in
    and the farm snapshot is published, followed by the alert summary.

    Cycles never overlap: scheduled and manual refreshes share one
    non-blocking lock and a refresh requested while a cycle is in flight is
    rejected instead of queued.
    """

    def __init__(
        self,
        fetch_reading: FetchReading,
        farms: Iterable[Farm] = (),
        interval_s: float = POLL_INTERVAL_S,
        fetch_timeout_s: float = FETCH_TIMEOUT_S,
        max_concurrent_fetches: int = MAX_CONCURRENT_FETCHES,
        clock: Callable[[], datetime] = datetime.now,
        auto_refresh: bool = True,
    ) -> None:
        self._logger = logging.getLogger("Orchestrator")
        self._fetch_reading = fetch_reading
        self._interval_s = interval_s
        self._fetch_timeout_s = fetch_timeout_s
        self._max_workers = max(1, int(max_concurrent_fetches))
        self._clock = clock

        self._farms: Tuple[Farm, ...] = tuple(farms)
        self._cycle_farms: Tuple[Farm, ...] = ()
        self._readings: Dict[int, SensorReading] = {}
        self._alerts = AlertSummary()
        self._state_lock = threading.Lock()

        self._cycle_lock = threading.Lock()
        self._cycle_state = CycleState.IDLE
        self._cycle_count = 0

        self._auto_refresh = auto_refresh
        self._lifecycle = Lifecycle.INIT
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()
        self._thread = None
        self._pool = None
        self._inflight: Dict[int, Future] = {}

        self._snapshot_listeners: List[SnapshotListener] = []
        self._alert_listeners: List[AlertListener] = []

    # ---- state ----

    @property
    def lifecycle(self) -> Lifecycle:
        return self._lifecycle

    @property
    def cycle_state(self) -> CycleState:
        return self._cycle_state

    @property
    def busy(self) -> bool:
        return self._cycle_state is CycleState.FETCHING

    @property
    def cycle_count(self) -> int:
        return self._cycle_count

    @property
    def auto_refresh_enabled(self) -> bool:
        return self._auto_refresh

    def farms(self) -> List[Farm]:
        with self._state_lock:
            return list(self._farms)

    def set_farms(self, farms: Iterable[Farm]) -> None:
        """Replace the roster. The next cycle polls the new set."""
        farms = tuple(farms)
        with self._state_lock:
            self._farms = farms
        self._logger.info(f"Roster updated: {[f.id for f in farms]}")

    def latest_snapshot(self) -> List[FarmReading]:
        with self._state_lock:
            return self._build_snapshot(self._cycle_farms, self._readings)

    def latest_readings(self) -> Dict[int, SensorReading]:
        with self._state_lock:
            return dict(self._readings)

    def latest_alerts(self) -> AlertSummary:
        with self._state_lock:
            return self._alerts

    # ---- subscriptions ----

    def subscribe_to_farm_snapshot(self, listener: SnapshotListener) -> None:
        self._snapshot_listeners.append(listener)

    def subscribe_to_alerts(self, listener: AlertListener) -> None:
        self._alert_listeners.append(listener)

    # ---- lifecycle ----

    def start(self) -> None:
        if self._lifecycle is not Lifecycle.INIT:
            raise RuntimeError(f"Orchestrator cannot start from {self._lifecycle.value}")
        self._pool = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="farm-fetch")
        self._thread = threading.Thread(target=self._run, name="farm-poller", daemon=True)
        self._lifecycle = Lifecycle.RUNNING
        self._thread.start()
        self._logger.info(f"Polling started (interval={self._interval_s}s, auto_refresh={self._auto_refresh})")

    def stop(self, timeout: float = None) -> None:
        if self._lifecycle is not Lifecycle.RUNNING:
            self._lifecycle = Lifecycle.STOPPED
            return
        self._logger.info("Stopping polling...")
        self._lifecycle = Lifecycle.STOPPED
        self._stop_event.set()
        self._wake_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        # Wait out a manual refresh that may still be submitting fetches
        with self._cycle_lock:
            if self._pool is not None:
                self._pool.shutdown(wait=False)
                self._pool = None

    def set_auto_refresh(self, enabled: bool) -> None:
        """
        Gate scheduled cycles. Disabling lets an in-flight cycle finish;
        enabling triggers a cycle right away.
        """
        enabled = bool(enabled)
        if enabled == self._auto_refresh:
            return
        self._auto_refresh = enabled
        self._logger.info(f"Auto refresh {'enabled' if enabled else 'disabled'}")
        if enabled:
            self._wake_event.set()

    def _run(self) -> None:
        while not self._stop_event.is_set():
            if self._auto_refresh:
                self.run_cycle()
            self._wake_event.wait(self._interval_s)
            self._wake_event.clear()

    # ---- cycles ----

    def refresh_now(self) -> bool:
        """Run a cycle out of band. Returns False if one is already running."""
        return self.run_cycle()

    def run_cycle(self) -> bool:
        if self._lifecycle is Lifecycle.STOPPED:
            self._logger.debug("Orchestrator stopped, not running a cycle")
            return False
        if not self._cycle_lock.acquire(blocking=False):
            self._logger.debug("Cycle already in flight, skipping")
            return False
        try:
            if self._lifecycle is Lifecycle.STOPPED:
                return False
            self._cycle_state = CycleState.FETCHING
            with self._state_lock:
                farms = self._farms

            readings = self._fetch_all(farms)
            alerts = aggregate(farms, readings)

            with self._state_lock:
                self._readings = readings
                self._alerts = alerts
                self._cycle_farms = farms
                snapshot = self._build_snapshot(farms, readings)
            self._cycle_count += 1

            unavailable = sum(1 for r in readings.values() if not r.available)
            self._logger.info(
                f"Cycle {self._cycle_count}: {len(farms)} farms ({unavailable} unavailable), "
                f"{len(alerts.warnings)} warnings, {len(alerts.criticals)} criticals"
            )
            self._publish(snapshot, alerts)
            return True
        finally:
            self._cycle_state = CycleState.IDLE
            self._cycle_lock.release()

    def _fetch_all(self, farms: Tuple[Farm, ...]) -> Dict[int, SensorReading]:
        if not farms:
            return {}

        pool = self._pool
        owns_pool = pool is None
        if owns_pool:
            # Manual refresh before start(): use a pool just for this cycle
            pool = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="farm-fetch")

        # A fetch that overran its timeout keeps its worker until it returns.
        # Its farm is not resubmitted while it runs, so a hung farm holds at
        # most one worker.
        self._inflight = {farm_id: f for farm_id, f in self._inflight.items() if not f.done()}

        readings: Dict[int, SensorReading] = {}
        pending: Dict[Future, Farm] = {}
        try:
            for farm in farms:
                if farm.id in self._inflight:
                    self._logger.warning(f"Previous fetch for farm {farm.id} still running, skipping")
                    readings[farm.id] = SensorReading.sentinel(self._clock())
                    continue
                future = pool.submit(self._fetch_reading, farm, self._fetch_timeout_s)
                self._inflight[farm.id] = future
                pending[future] = farm

            done, not_done = wait(pending, timeout=self._fetch_timeout_s)
            for future in done:
                farm = pending[future]
                del self._inflight[farm.id]
                try:
                    readings[farm.id] = future.result()
                except Exception as e:
                    self._logger.warning(f"Fetch for farm {farm.id} failed: {e}")
                    readings[farm.id] = SensorReading.sentinel(self._clock())
            for future in not_done:
                farm = pending[future]
                if future.cancel():
                    del self._inflight[farm.id]
                self._logger.warning(f"Fetch for farm {farm.id} timed out after {self._fetch_timeout_s}s")
                readings[farm.id] = SensorReading.sentinel(self._clock())
        finally:
            if owns_pool:
                pool.shutdown(wait=False)
        return {farm.id: readings[farm.id] for farm in farms}

    @staticmethod
    def _build_snapshot(farms, readings) -> List[FarmReading]:
        return [FarmReading(farm, readings[farm.id]) for farm in farms if farm.id in readings]

    def _publish(self, snapshot: List[FarmReading], alerts: AlertSummary) -> None:
        for listener in list(self._snapshot_listeners):
            try:
                listener(list(snapshot))
            except Exception as e:
                self._logger.error(f"Snapshot subscriber failed: {e}")
        for listener in list(self._alert_listeners):
            try:
                listener(alerts)
            except Exception as e:
                self._logger.error(f"Alert subscriber failed: {e}")
