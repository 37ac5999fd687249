from datetime import datetime
from unittest import mock

import pytest

from common.errors import FetchFailure, UnknownFarmError
from common.models import Actuator, Farm, SensorReading
from monitor.monitor_service import build_service

NOW = datetime(2024, 5, 1, 12, 0, 0)

FARMS = [
    Farm(id=1, name="Kandang 1", location="Kandang 1"),
    Farm(id=2, name="Kandang 2", location="Kandang 2"),
]

SYSTEM_CONFIG = {
    "defaults": {"poll_interval_s": 10, "roster_refresh_s": 0, "fan_start_hz": 30},
    "farms": [
        {"id": 7, "name": "Kandang 7", "location": "Kandang 7", "config": {"kandang": "k7"}},
    ],
}


def _api(farms=None, error=None):
    api = mock.Mock()
    if error is not None:
        api.fetch_farm_list.side_effect = error
    else:
        api.fetch_farm_list.return_value = list(farms)
    api.fetch_reading.side_effect = lambda farm, timeout: SensorReading(
        33.4 if farm.id == 2 else 22.0, 50.0, 5.0, NOW
    )
    return api


@pytest.fixture
def service():
    svc = build_service(SYSTEM_CONFIG, clock=lambda: NOW, api=_api(FARMS))
    yield svc
    svc.stop()


def test_build_service_reads_system_config(service):
    assert service.orchestrator._interval_s == 10.0
    assert service.load_roster() == FARMS
    assert service.toggle(1, Actuator.FAN).fan_frequency_hz == 30


def test_roster_seeds_control_store(service):
    service.load_roster()
    assert sorted(service.store.farm_ids()) == [1, 2]
    assert [f.id for f in service.orchestrator.farms()] == [1, 2]


def test_roster_change_keeps_existing_control_state(service):
    service.load_roster()
    service.set_fan_frequency(1, 40)
    service.apply_roster([FARMS[0], Farm(id=3, name="Kandang 3")])
    assert service.get_control_state(1).fan_frequency_hz == 40
    assert service.get_control_state(3).fan_on is False
    with pytest.raises(UnknownFarmError):
        service.get_control_state(2)


def test_roster_failure_falls_back_to_configured_farms():
    svc = build_service(SYSTEM_CONFIG, clock=lambda: NOW, api=_api(error=FetchFailure("401")))
    farms = svc.load_roster()
    assert [f.id for f in farms] == [7]
    assert svc.store.farm_ids() == [7]


def test_roster_failure_keeps_current_roster(service):
    service.load_roster()
    service.api.fetch_farm_list.side_effect = FetchFailure("timeout")
    assert service.load_roster() == FARMS
    assert sorted(service.store.farm_ids()) == [1, 2]


def test_refresh_publishes_alerts_and_overview(service):
    service.load_roster()
    alerts = []
    service.subscribe_to_alerts(alerts.append)
    assert service.refresh_now()

    assert [(a.farm_id, a.metric.value) for a in alerts[0].criticals] == [(2, "temperature")]
    overview = service.overview()
    assert overview.total_sensors == 6
    assert overview.alert_count == 1


def test_overview_follows_the_published_snapshot(service):
    service.load_roster()
    assert service.overview().active_farms == 0

    service.refresh_now()
    service.apply_roster([FARMS[0], Farm(id=3, name="Kandang 3"), Farm(id=4, name="Kandang 4")])
    # roster changed but no cycle ran yet: overview still describes the last snapshot
    assert [item.farm.id for item in service.farm_snapshot()] == [1, 2]
    assert service.overview().active_farms == 2
    assert service.overview().total_sensors == 6

    service.refresh_now()
    assert [item.farm.id for item in service.farm_snapshot()] == [1, 3, 4]
    assert service.overview().active_farms == 3


def test_polling_never_changes_controls(service):
    service.load_roster()
    service.toggle(1, Actuator.FEEDER)
    before = service.get_control_state(1)
    service.refresh_now()
    service.refresh_now()
    assert service.get_control_state(1) == before


def test_control_changes_are_published(service):
    service.load_roster()
    seen = []
    service.subscribe_to_controls(lambda farm_id, actuator, state: seen.append((farm_id, actuator)))
    service.toggle(2, Actuator.COOLING_PAD_1)
    assert seen == [(2, Actuator.COOLING_PAD_1)]
