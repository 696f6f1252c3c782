"""
Digital I/O pins.

``GPIOPin`` drives a Raspberry Pi BCM pin through RPi.GPIO. ``MemoryPin`` keeps
its level in memory and is used on development hosts and in tests; external
changes (a float switch tipping, a probe drying out) are simulated with
``set_level``.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from enum import Enum

from gardenrig.domain.exceptions import DeviceError
from gardenrig.enums.irrigation import Edge

logger = logging.getLogger(__name__)

HIGH = 1
LOW = 0

EdgeCallback = Callable[[int], None]


class PinDirection(str, Enum):
    INPUT = "in"
    OUTPUT = "out"


_gpio_module = None


def load_gpio():
    """Import RPi.GPIO once, in BCM mode. Raises DeviceError off the Pi."""
    global _gpio_module
    if _gpio_module is None:
        try:
            import RPi.GPIO as GPIO  # type: ignore
        except (ImportError, RuntimeError) as e:
            raise DeviceError(f"RPi.GPIO not available: {e}") from e
        GPIO.setwarnings(False)
        GPIO.setmode(GPIO.BCM)
        _gpio_module = GPIO
    return _gpio_module


def gpio_available() -> bool:
    try:
        load_gpio()
    except DeviceError:
        return False
    return True


class DigitalPin:
    """
    Common interface for a single digital line.

    Attributes:
        pin (int): BCM pin number.
        role (str): Logical role owning the pin, used in log messages.
    """

    def __init__(self, pin: int, role: str):
        self.pin = pin
        self.role = role
        self.direction: PinDirection | None = None

    def configure(self, direction: PinDirection, initial: int | None = None) -> None:
        raise NotImplementedError("Subclasses must implement configure method")

    def read(self) -> int:
        raise NotImplementedError("Subclasses must implement read method")

    def write(self, level: int) -> None:
        raise NotImplementedError("Subclasses must implement write method")

    def watch(self, edge: Edge, callback: EdgeCallback, debounce_ms: int = 0) -> None:
        """Call ``callback(pin)`` on every matching transition until unwatched."""
        raise NotImplementedError("Subclasses must implement watch method")

    def unwatch(self) -> None:
        raise NotImplementedError("Subclasses must implement unwatch method")

    def cleanup(self) -> None:
        """Release the pin. Safe to call more than once."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(pin={self.pin}, role={self.role!r})"


class GPIOPin(DigitalPin):
    """Digital line on the Raspberry Pi header, via RPi.GPIO."""

    def __init__(self, pin: int, role: str):
        super().__init__(pin, role)
        self.GPIO = load_gpio()
        self._watching = False

    def configure(self, direction: PinDirection, initial: int | None = None) -> None:
        try:
            if direction == PinDirection.OUTPUT:
                if initial is None:
                    self.GPIO.setup(self.pin, self.GPIO.OUT)
                else:
                    self.GPIO.setup(self.pin, self.GPIO.OUT, initial=initial)
            else:
                self.GPIO.setup(self.pin, self.GPIO.IN)
        except (RuntimeError, ValueError) as e:
            raise DeviceError(f"Failed to configure GPIO {self.pin} ({self.role}): {e}", detail={"pin": self.pin}) from e
        self.direction = direction
        logger.debug("GPIO pin %s set as %s for %s", self.pin, direction.value, self.role)

    def read(self) -> int:
        try:
            return HIGH if self.GPIO.input(self.pin) else LOW
        except (RuntimeError, ValueError) as e:
            raise DeviceError(f"Failed to read GPIO {self.pin} ({self.role}): {e}", detail={"pin": self.pin}) from e

    def write(self, level: int) -> None:
        try:
            self.GPIO.output(self.pin, self.GPIO.HIGH if level else self.GPIO.LOW)
        except (RuntimeError, ValueError) as e:
            raise DeviceError(f"Failed to write GPIO {self.pin} ({self.role}): {e}", detail={"pin": self.pin}) from e

    def watch(self, edge: Edge, callback: EdgeCallback, debounce_ms: int = 0) -> None:
        gpio_edge = {
            Edge.RISING: self.GPIO.RISING,
            Edge.FALLING: self.GPIO.FALLING,
            Edge.BOTH: self.GPIO.BOTH,
        }[edge]
        try:
            if debounce_ms > 0:
                self.GPIO.add_event_detect(self.pin, gpio_edge, callback=callback, bouncetime=debounce_ms)
            else:
                self.GPIO.add_event_detect(self.pin, gpio_edge, callback=callback)
        except RuntimeError as e:
            raise DeviceError(f"Failed to watch GPIO {self.pin} ({self.role}): {e}", detail={"pin": self.pin}) from e
        self._watching = True

    def unwatch(self) -> None:
        if self._watching:
            try:
                self.GPIO.remove_event_detect(self.pin)
            except RuntimeError as e:
                logger.error("Error removing edge detection on GPIO %s: %s", self.pin, e)
            self._watching = False

    def cleanup(self) -> None:
        self.unwatch()
        try:
            self.GPIO.cleanup(self.pin)
            logger.debug("Cleaned up GPIO pin %s for %s", self.pin, self.role)
        except RuntimeError as e:
            logger.error("Error cleaning up GPIO pin %s: %s", self.pin, e)


class MemoryPin(DigitalPin):
    """
    In-memory digital line.

    Writes and ``set_level`` both change the level; a change fires the watch
    callback synchronously on the calling thread when it matches the watched
    edge. Debounce is ignored. ``fail_reads`` / ``fail_writes`` make the next
    operations raise ``DeviceError``.
    """

    def __init__(self, pin: int, role: str, level: int = LOW):
        super().__init__(pin, role)
        self.level = level
        self.writes: list[int] = []
        self.fail_reads = False
        self.fail_writes = False
        self._watch: tuple[Edge, EdgeCallback] | None = None
        self._lock = threading.Lock()

    def configure(self, direction: PinDirection, initial: int | None = None) -> None:
        self.direction = direction
        if initial is not None:
            self.level = initial

    def read(self) -> int:
        if self.fail_reads:
            raise DeviceError(f"Simulated read failure on GPIO {self.pin} ({self.role})", detail={"pin": self.pin})
        return self.level

    def write(self, level: int) -> None:
        if self.fail_writes:
            raise DeviceError(f"Simulated write failure on GPIO {self.pin} ({self.role})", detail={"pin": self.pin})
        self.writes.append(HIGH if level else LOW)
        self.set_level(level)

    def set_level(self, level: int) -> None:
        """Change the line level, firing the watch callback on a matching edge."""
        level = HIGH if level else LOW
        with self._lock:
            previous, self.level = self.level, level
            watch = self._watch
        if watch is None or previous == level:
            return
        edge, callback = watch
        rising = level == HIGH
        if edge == Edge.BOTH or (edge == Edge.RISING) == rising:
            callback(self.pin)

    @property
    def watching(self) -> bool:
        return self._watch is not None

    def watch(self, edge: Edge, callback: EdgeCallback, debounce_ms: int = 0) -> None:
        with self._lock:
            if self._watch is not None:
                raise DeviceError(f"GPIO {self.pin} ({self.role}) is already watched", detail={"pin": self.pin})
            self._watch = (edge, callback)

    def unwatch(self) -> None:
        with self._lock:
            self._watch = None

    def cleanup(self) -> None:
        self.unwatch()
