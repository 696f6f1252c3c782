"""
MoistureSampler: reads every pot's soil probe once per irrigation cycle.

The probes share a single sense-power line. Powering them only for the
sampling window keeps electrolysis from eating the probe tracks.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence

from gardenrig.constants import Timeouts
from gardenrig.domain.exceptions import DeviceError, SensorReadError
from gardenrig.domain.moisture import MoistureSnapshot
from gardenrig.hardware.gpio.pin import HIGH, LOW, DigitalPin

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class MoistureSampler:
    """
    Samples all moisture probes in pot order.

    A probe reads logic-high when the soil is dry. A probe that cannot be read
    is reported dry, the worst case for the plant.
    """

    def __init__(
        self,
        settle: float = Timeouts.SENSOR_SETTLE,
        inter_read_delay: float = Timeouts.INTER_READ_DELAY,
        sleep: Sleep = asyncio.sleep,
    ):
        self.settle = settle
        self.inter_read_delay = inter_read_delay
        self._sleep = sleep
        self.failed_reads = 0

    async def sample(self, sensors: Sequence[DigitalPin], shared_power_pin: DigitalPin) -> MoistureSnapshot:
        """
        Power the probes, read each in order, then power them down.

        Raises:
            SensorReadError: if the sense-power line cannot be switched on.
        """
        try:
            shared_power_pin.write(HIGH)
        except DeviceError as e:
            raise SensorReadError(f"Cannot power moisture probes: {e}", detail=e.detail) from e

        readings: list[bool] = []
        try:
            await self._sleep(self.settle)
            for index, sensor in enumerate(sensors):
                if index:
                    await self._sleep(self.inter_read_delay)
                readings.append(self._read_dry(index, sensor))
        finally:
            try:
                shared_power_pin.write(LOW)
            except DeviceError as e:
                logger.error("Failed to power down moisture probes: %s", e)

        snapshot = MoistureSnapshot(tuple(readings))
        logger.debug("Moisture sample: dry pots %s", snapshot.dry_pots)
        return snapshot

    def _read_dry(self, index: int, sensor: DigitalPin) -> bool:
        try:
            return sensor.read() == HIGH
        except DeviceError as e:
            self.failed_reads += 1
            logger.warning("Moisture probe %s unreadable, treating pot as dry: %s", index, e)
            return True
