import logging
import math
import threading
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from common.config import DEFAULT_FAN_START_HZ, FAN_MAX_HZ
from common.errors import UnknownFarmError
from common.models import Actuator, ControlState

ControlListener = Callable[[int, Actuator, ControlState], None]


class _Entry:
    __slots__ = ("lock", "state", "issued", "delivered", "turn")

    def __init__(self, state: ControlState):
        self.lock = threading.Lock()
        self.state = state
        # change numbers: issued under `lock`, delivered in order under `turn`
        self.issued = 0
        self.delivered = 0
        self.turn = threading.Condition()


def clamp_frequency(requested_hz) -> float:
    """Clamp a requested fan frequency into [0, FAN_MAX_HZ]."""
    hz = float(requested_hz)
    if math.isnan(hz):
        raise ValueError("Fan frequency must be a number")
    return max(0.0, min(FAN_MAX_HZ, hz))


class ControlStateStore:
    """
    Authoritative per-farm actuator state.

    Every mutation builds the new state on a copy and swaps it in under the
    farm's own lock, so callers never observe a half-applied change. Farms
    are independent: operations on different farms do not contend.
    Listeners see a farm's changes in the order they were applied.

    Invariants kept after each call:
      - fan_on == (fan_frequency_hz > 0)
      - 0 <= fan_frequency_hz <= FAN_MAX_HZ
      - last_changed[actuator] is stamped on every toggle/frequency change
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now,
                 fan_start_hz: float = DEFAULT_FAN_START_HZ):
        self._logger = logging.getLogger("ControlStateStore")
        self._clock = clock
        self._fan_start_hz = clamp_frequency(fan_start_hz) or FAN_MAX_HZ
        self._entries: Dict[int, _Entry] = {}
        self._registry_lock = threading.Lock()
        self._listeners: List[ControlListener] = []

    # ---- roster lifecycle ----

    def add_farm(self, farm_id: int) -> bool:
        """Register a farm with all actuators off. Returns False if already known."""
        with self._registry_lock:
            if farm_id in self._entries:
                return False
            self._entries[farm_id] = _Entry(ControlState())
        self._logger.info(f"Control state created for farm {farm_id}")
        return True

    def remove_farm(self, farm_id: int) -> bool:
        with self._registry_lock:
            removed = self._entries.pop(farm_id, None)
        if removed is not None:
            self._logger.info(f"Control state dropped for farm {farm_id}")
        return removed is not None

    def sync(self, farm_ids: Iterable[int]) -> None:
        """Make the active set exactly `farm_ids`, keeping state of farms that stay."""
        desired = set(farm_ids)
        with self._registry_lock:
            current = set(self._entries.keys())
        for farm_id in desired - current:
            self.add_farm(farm_id)
        for farm_id in current - desired:
            self.remove_farm(farm_id)

    def farm_ids(self) -> List[int]:
        with self._registry_lock:
            return list(self._entries.keys())

    # ---- reads ----

    def get(self, farm_id: int) -> ControlState:
        entry = self._entry(farm_id)
        with entry.lock:
            return entry.state.copy()

    def snapshot_all(self) -> Dict[int, ControlState]:
        with self._registry_lock:
            entries = dict(self._entries)
        result = {}
        for farm_id, entry in entries.items():
            with entry.lock:
                result[farm_id] = entry.state.copy()
        return result

    # ---- mutations ----

    def toggle(self, farm_id: int, actuator: Actuator) -> ControlState:
        """
        Flip one actuator. Turning the fan off zeroes its frequency; turning
        it on from 0 Hz starts it at the configured start frequency.
        """
        if not isinstance(actuator, Actuator):
            raise ValueError(f"Unknown actuator {actuator!r}")

        entry = self._entry(farm_id)
        with entry.lock:
            new = entry.state.copy()
            now = self._clock()

            if actuator is Actuator.FAN:
                new.fan_on = not new.fan_on
                if not new.fan_on:
                    new.fan_frequency_hz = 0.0
                elif new.fan_frequency_hz <= 0.0:
                    new.fan_frequency_hz = self._fan_start_hz
            elif actuator is Actuator.FEEDER:
                new.feeder_on = not new.feeder_on
            elif actuator is Actuator.COOLING_PAD_1:
                new.cooling_pad1_on = not new.cooling_pad1_on
            elif actuator is Actuator.COOLING_PAD_2:
                new.cooling_pad2_on = not new.cooling_pad2_on

            new.last_changed[actuator] = now
            entry.state = new
            result = new.copy()
            ticket = entry.issued
            entry.issued += 1

        self._logger.info(
            f"Farm {farm_id}: {actuator.value} turned {'ON' if result.is_on(actuator) else 'OFF'}"
        )
        self._deliver(entry, ticket, farm_id, actuator, result)
        return result

    def set_fan_frequency(self, farm_id: int, requested_hz) -> ControlState:
        """
        Set the fan frequency, clamped into [0, 50] Hz. A positive value turns
        the fan on, zero turns it off. Out-of-range input is never rejected.
        """
        hz = clamp_frequency(requested_hz)

        entry = self._entry(farm_id)
        with entry.lock:
            new = entry.state.copy()
            new.fan_frequency_hz = hz
            new.fan_on = hz > 0.0
            new.last_changed[Actuator.FAN] = self._clock()
            entry.state = new
            result = new.copy()
            ticket = entry.issued
            entry.issued += 1

        if hz != float(requested_hz):
            self._logger.debug(f"Farm {farm_id}: fan frequency {requested_hz} clamped to {hz}")
        self._logger.info(f"Farm {farm_id}: fan frequency set to {hz:g} Hz")
        self._deliver(entry, ticket, farm_id, Actuator.FAN, result)
        return result

    # ---- subscriptions ----

    def subscribe(self, listener: ControlListener) -> None:
        self._listeners.append(listener)

    def _deliver(self, entry: _Entry, ticket: int, farm_id: int, actuator: Actuator, state: ControlState) -> None:
        """
        Notify listeners of change number `ticket` once every earlier change
        of the same farm has been delivered. Listeners may read the store but
        must not mutate the farm they are told about.
        """
        with entry.turn:
            while entry.delivered != ticket:
                entry.turn.wait()
        try:
            self._notify(farm_id, actuator, state)
        finally:
            with entry.turn:
                entry.delivered += 1
                entry.turn.notify_all()

    def _notify(self, farm_id: int, actuator: Actuator, state: ControlState) -> None:
        for listener in list(self._listeners):
            try:
                listener(farm_id, actuator, state.copy())
            except Exception as e:
                self._logger.error(f"Control listener failed for farm {farm_id}: {e}")

    def _entry(self, farm_id: int) -> _Entry:
        with self._registry_lock:
            entry: Optional[_Entry] = self._entries.get(farm_id)
        if entry is None:
            raise UnknownFarmError(farm_id)
        return entry
