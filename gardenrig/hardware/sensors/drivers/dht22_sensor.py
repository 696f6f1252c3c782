"""
Hardware driver for the DHT22 temperature and humidity sensor.
Only the thermal controller reads it, always from a worker thread.
"""

import logging
import threading
import time
from typing import Any

from gardenrig.constants import Limits, Timeouts
from gardenrig.domain.exceptions import DeviceError, SensorReadError
from gardenrig.utils.time import iso_now

from .base import BaseSensorDriver

logger = logging.getLogger(__name__)


class DHT22Sensor(BaseSensorDriver):
    """
    Hardware driver for the DHT22 via adafruit-circuitpython-dht.
    Provides validated readings with retry logic and thread-safe access.
    """

    def __init__(
        self,
        pin: int,
        unit_id: str = "1",
        retries: int = Timeouts.DHT_RETRIES,
        retry_delay: float = Timeouts.DHT_RETRY_DELAY,
    ):
        """
        Initialize the DHT22 sensor hardware.

        Args:
            pin (int): BCM pin number of the data line (e.g., 18 for D18).
            unit_id (str): Unit identifier for reference.
            retries (int): Read attempts per sample.
            retry_delay (float): Seconds between attempts; the DHT22 needs ~2 s.
        """
        super().__init__(unit_id)
        self.pin = pin
        self.retries = max(1, retries)
        self.retry_delay = retry_delay
        self.lock = threading.Lock()

        try:
            import adafruit_dht  # type: ignore
            import board  # type: ignore
        except (ImportError, NotImplementedError) as e:
            raise DeviceError(f"DHT22 libraries not available: {e}") from e

        gpio_pin = getattr(board, f"D{pin}", None)
        if gpio_pin is None:
            raise DeviceError(f"Invalid GPIO pin for DHT22: D{pin}", detail={"pin": pin})
        try:
            self.sensor = adafruit_dht.DHT22(gpio_pin, use_pulseio=False)
        except RuntimeError as e:
            raise DeviceError(f"Failed to initialize DHT22 on D{pin}: {e}", detail={"pin": pin}) from e
        logger.info("DHT22 sensor initialized on pin D%s", pin)

    def sample(self) -> dict[str, Any]:
        """
        Read temperature and humidity, retrying transient checksum errors.

        Returns:
            dict: ``temperature`` (°C), ``humidity`` (%RH), ``timestamp``, ``status``.

        Raises:
            SensorReadError: after all attempts failed or returned implausible values.
        """
        last_error = "no reading"
        with self.lock:
            for attempt in range(self.retries):
                try:
                    temp = self.sensor.temperature
                    hum = self.sensor.humidity
                except RuntimeError as e:
                    # Checksum and timing errors are routine on the DHT22
                    last_error = str(e)
                    logger.warning("DHT22 read retry %s failed: %s", attempt + 1, e)
                else:
                    if _plausible(temp, hum):
                        return {"temperature": float(temp), "humidity": float(hum), "timestamp": iso_now(), "status": "OK"}
                    last_error = f"implausible reading temperature={temp} humidity={hum}"
                    logger.warning("DHT22 read retry %s rejected: %s", attempt + 1, last_error)
                if attempt + 1 < self.retries:
                    time.sleep(self.retry_delay)
        raise SensorReadError(f"DHT22 on D{self.pin} failed: {last_error}", detail={"pin": self.pin})

    def cleanup(self) -> None:
        self.sensor.exit()
        logger.info("DHT22 sensor cleanup complete.")


def _plausible(temperature: float | None, humidity: float | None) -> bool:
    if temperature is None or humidity is None:
        return False
    t_min, t_max = Limits.DHT22_TEMPERATURE_RANGE
    h_min, h_max = Limits.DHT22_HUMIDITY_RANGE
    return t_min <= temperature <= t_max and h_min <= humidity <= h_max
