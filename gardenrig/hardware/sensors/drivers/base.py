"""
Base class for the rig's sensor drivers.
Provides a standard interface plus an in-memory driver for development hosts.
"""

import logging
from typing import Any

from gardenrig.domain.exceptions import SensorReadError
from gardenrig.utils.time import iso_now

logger = logging.getLogger(__name__)


class BaseSensorDriver:
    """
    Abstract base class for sensor drivers.
    All drivers should inherit from this and implement the sample() method.
    """

    def __init__(self, unit_id: str = "1"):
        self.unit_id = unit_id

    def sample(self) -> dict[str, Any]:
        """
        Read data from the sensor. Should be implemented by subclasses.
        Returns:
            dict: Sensor reading with timestamp.
        Raises:
            SensorReadError: when no valid reading could be taken.
        """
        raise NotImplementedError("sample() must be implemented by subclasses.")

    def cleanup(self) -> None:
        """
        Optional cleanup for hardware resources.
        """
        pass


class MemoryClimateSensor(BaseSensorDriver):
    """
    Temperature/humidity source fed from memory.

    Each ``sample()`` pops the next queued reading; once the queue is empty the
    last reading repeats. Queue ``None`` to simulate a failed read.
    """

    def __init__(self, temperature: float = 23.4, humidity: float = 48.6, unit_id: str = "mock"):
        super().__init__(unit_id)
        self.queued: list[tuple[float, float] | None] = []
        self.current: tuple[float, float] | None = (temperature, humidity)
        self.sample_count = 0

    def queue(self, *readings: tuple[float, float] | None) -> None:
        self.queued.extend(readings)

    def sample(self) -> dict[str, Any]:
        self.sample_count += 1
        if self.queued:
            self.current = self.queued.pop(0)
        if self.current is None:
            raise SensorReadError("Simulated climate sensor failure", detail={"unit_id": self.unit_id})
        temperature, humidity = self.current
        return {"temperature": temperature, "humidity": humidity, "timestamp": iso_now(), "status": "MOCK"}
