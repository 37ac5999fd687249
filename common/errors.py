class FarmMonitorError(Exception):
    """Base class for errors raised by the farm monitor."""


class FetchFailure(FarmMonitorError):
    """Telemetry or roster could not be fetched from the farm API."""


class UnknownFarmError(FarmMonitorError, KeyError):
    """A control operation referenced a farm that is not in the store."""

    def __init__(self, farm_id):
        super().__init__(farm_id)
        self.farm_id = farm_id

    def __str__(self) -> str:
        return f"Unknown farm: {self.farm_id}"
