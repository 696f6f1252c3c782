"""
ThermalController: switches the cooling fan from the DHT22 reading.

- Fan on above the cooling limit, off again once the air has cooled below
  the limit minus the hysteresis band
- Humidity jumps are logged for the grower
- Sample timings tracked in PerformanceMetrics
"""

import asyncio
import logging
from dataclasses import dataclass, field
from functools import wraps
from time import perf_counter
from typing import Any

from gardenrig.constants import Limits
from gardenrig.domain.controller_state import ThermalState
from gardenrig.domain.exceptions import SensorReadError
from gardenrig.hardware.actuators.relay_base import RelayBase
from gardenrig.hardware.sensors.drivers.base import BaseSensorDriver
from infrastructure.logging.audit import AuditLogger

logger = logging.getLogger(__name__)


@dataclass
class PerformanceMetric:
    count: int = 0
    total_ms: float = 0.0
    min_ms: float | None = None
    max_ms: float | None = None

    def record(self, elapsed_ms: float) -> None:
        self.count += 1
        self.total_ms += elapsed_ms
        self.min_ms = elapsed_ms if self.min_ms is None else min(self.min_ms, elapsed_ms)
        self.max_ms = elapsed_ms if self.max_ms is None else max(self.max_ms, elapsed_ms)

    @property
    def avg_ms(self) -> float:
        return self.total_ms / self.count if self.count else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "min_ms": self.min_ms,
            "max_ms": self.max_ms,
            "avg_ms": self.avg_ms,
        }


@dataclass
class PerformanceMetrics:
    metrics: dict[str, PerformanceMetric] = field(default_factory=dict)

    def record(self, name: str, elapsed_ms: float) -> None:
        metric = self.metrics.setdefault(name, PerformanceMetric())
        metric.record(elapsed_ms)

    def to_dict(self) -> dict[str, Any]:
        return {name: metric.to_dict() for name, metric in self.metrics.items()}


def track_performance(name: str):
    def decorator(func):
        @wraps(func)
        async def wrapper(self, *args, **kwargs):
            start = perf_counter()
            try:
                return await func(self, *args, **kwargs)
            finally:
                elapsed_ms = (perf_counter() - start) * 1000.0
                if hasattr(self, "performance_metrics"):
                    self.performance_metrics.record(name, elapsed_ms)

        return wrapper

    return decorator


class ThermalController:
    """
    Fan control with hysteresis.

    The sensor read blocks for up to a few seconds (DHT22 retries), so it runs
    in a worker thread. A failed read leaves the fan as it was.
    """

    def __init__(
        self,
        sensor: BaseSensorDriver | None,
        fan: RelayBase,
        state: ThermalState,
        cooling_limit: float = Limits.START_COOLING_TEMPERATURE_LIMIT,
        hysteresis: float = Limits.COOLING_HYSTERESIS,
        humidity_jump_threshold: float = Limits.HUMIDITY_JUMP_THRESHOLD,
        audit: AuditLogger | None = None,
    ):
        """
        Args:
            sensor: Temperature/humidity driver; None disables thermal control
            fan: Cooling fan relay
            state: Thermal state owned by the controller
            cooling_limit: °C above which the fan starts
            hysteresis: °C below the limit the air must reach before the fan stops
            humidity_jump_threshold: %RH change between samples worth logging
        """
        self.sensor = sensor
        self.fan = fan
        self.state = state
        self.cooling_limit = cooling_limit
        self.hysteresis = hysteresis
        self.humidity_jump_threshold = humidity_jump_threshold
        self.audit = audit
        self.performance_metrics = PerformanceMetrics()
        self.failed_samples = 0

    @track_performance("thermal_cycle")
    async def run_cycle(self) -> bool:
        """
        Sample once and update the fan.

        Returns:
            True if a reading was taken, False if the cycle was a no-op
        """
        if self.sensor is None:
            logger.debug("Thermal cycle skipped: no climate sensor")
            return False

        try:
            reading = await asyncio.to_thread(self.sensor.sample)
        except SensorReadError as e:
            self.failed_samples += 1
            logger.warning("Thermal cycle skipped, climate sensor failed: %s", e)
            return False

        self.apply(float(reading["temperature"]), float(reading["humidity"]))
        return True

    def apply(self, temperature: float, humidity: float) -> None:
        """Update the fan and state from one reading."""
        self._log_humidity_change(humidity)
        self.state.last_temperature = temperature
        self.state.last_humidity = humidity

        if self.state.cooling_active:
            should_cool = temperature > self.cooling_limit - self.hysteresis
        else:
            should_cool = temperature > self.cooling_limit

        if should_cool:
            self.fan.turn_on()
        else:
            self.fan.turn_off()

        if should_cool != self.state.cooling_active:
            self.state.cooling_active = should_cool
            logger.info(
                "Cooling %s at %.1f°C (limit %.1f°C)", "started" if should_cool else "stopped", temperature, self.cooling_limit
            )
            if self.audit is not None:
                self.audit.log_event(
                    "thermal_controller", "cooling", self.fan.get_device(), "on" if should_cool else "off",
                    temperature=temperature, humidity=humidity,
                )
        else:
            logger.debug("Temperature %.1f°C, humidity %.1f%%, cooling %s", temperature, humidity, should_cool)

    def _log_humidity_change(self, humidity: float) -> None:
        previous = self.state.last_humidity
        if previous is None:
            return
        delta = humidity - previous
        if abs(delta) > self.humidity_jump_threshold:
            logger.info("Humidity %s from %.1f%% to %.1f%%", "rose" if delta > 0 else "fell", previous, humidity)
