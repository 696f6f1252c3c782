"""
WateringActuator: the tank refill and pot fill state machines.

Both run ``Idle -> Filling -> {FULL, TIMED_OUT, INTERLOCKED}``. A fill powers
a level sensor, watches it for the edge that means "done", runs a pump, and
polls until the edge fires, watering becomes blocked, or the tick cap is
reached. The pump, the sensor power and the edge watch are released on every
exit path.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from datetime import datetime
from time import perf_counter

from gardenrig.constants import Timeouts
from gardenrig.domain.controller_state import ControllerState
from gardenrig.domain.exceptions import ActuationTimeout, DeviceError
from gardenrig.enums.irrigation import Edge, FillOutcome
from gardenrig.hardware.actuators.relay_base import RelayBase
from gardenrig.hardware.gpio.pin import HIGH, LOW, DigitalPin
from gardenrig.utils.time import utc_now
from infrastructure.logging.audit import AuditLogger

logger = logging.getLogger(__name__)


class EdgeWatch:
    """
    Bridges a pin edge callback into an ``asyncio.Event``.

    The callback arrives on the GPIO library's thread. It runs ``on_edge``
    right there (used to cut the pump without waiting for the loop) and then
    sets the event through ``call_soon_threadsafe``. Once ``close()`` returns
    a late callback does nothing.
    """

    def __init__(
        self,
        pin: DigitalPin,
        edge: Edge,
        loop: asyncio.AbstractEventLoop,
        on_edge: Callable[[], None] | None = None,
        debounce_ms: int = 0,
    ):
        self.pin = pin
        self.edge = edge
        self.loop = loop
        self.on_edge = on_edge
        self.debounce_ms = debounce_ms
        self.event = asyncio.Event()
        self.closed = False
        self._lock = threading.Lock()

    def open(self) -> "EdgeWatch":
        self.pin.watch(self.edge, self._callback, self.debounce_ms)
        return self

    def _callback(self, channel: int) -> None:
        with self._lock:
            if self.closed:
                return
            if self.on_edge is not None:
                self.on_edge()
        try:
            self.loop.call_soon_threadsafe(self.event.set)
        except RuntimeError:
            # Loop already closed
            pass

    @property
    def fired(self) -> bool:
        return self.event.is_set()

    def close(self) -> None:
        with self._lock:
            self.closed = True
        self.pin.unwatch()


class WateringActuator:
    """
    Drives the main pump (tank refill) and the pot pumps (pot fill).

    Only one fill runs at a time: the main pump and the small tank's sensors
    are shared by every pot.
    """

    def __init__(
        self,
        state: ControllerState,
        main_pump: RelayBase,
        pot_pumps: list[RelayBase],
        tank_top_sensor: DigitalPin,
        tank_top_power: DigitalPin,
        tank_bottom_sensor: DigitalPin,
        tank_bottom_power: DigitalPin,
        poll_interval: float = Timeouts.FILL_POLL_INTERVAL,
        tank_refill_max_ticks: int = Timeouts.TANK_REFILL_MAX_TICKS,
        pot_fill_max_ticks: int = Timeouts.POT_FILL_MAX_TICKS,
        settle: float = Timeouts.SENSOR_SETTLE,
        debounce_ms: int = Timeouts.GPIO_DEBOUNCE_MS,
        audit: AuditLogger | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.state = state
        self.main_pump = main_pump
        self.pot_pumps = pot_pumps
        self.tank_top_sensor = tank_top_sensor
        self.tank_top_power = tank_top_power
        self.tank_bottom_sensor = tank_bottom_sensor
        self.tank_bottom_power = tank_bottom_power
        self.poll_interval = poll_interval
        self.tank_refill_max_ticks = tank_refill_max_ticks
        self.pot_fill_max_ticks = pot_fill_max_ticks
        self.settle = settle
        self.debounce_ms = debounce_ms
        self.audit = audit
        self.clock = clock
        self.lock = asyncio.Lock()
        self.last_ticks = 0
        self.last_timeout: ActuationTimeout | None = None

    async def tank_refill(self) -> FillOutcome:
        """
        Top up the small tank from the main tank.

        Returns INTERLOCKED without touching any pin while the safety
        interlock is active.
        """
        return await self._fill(
            name="tank_refill",
            pump=self.main_pump,
            sensor=self.tank_top_sensor,
            power=self.tank_top_power,
            done_edge=Edge.FALLING,
            done_level=LOW,
            max_ticks=self.tank_refill_max_ticks,
            blocked=lambda: self.state.safety.shutdown_active,
        )

    async def pot_fill(self, pot: int) -> FillOutcome:
        """Drain the small tank into ``pot`` until its bottom sensor reports empty."""
        if not 0 <= pot < len(self.pot_pumps):
            raise ValueError(f"pot index {pot} out of range")
        return await self._fill(
            name=f"pot_fill[{pot}]",
            pump=self.pot_pumps[pot],
            sensor=self.tank_bottom_sensor,
            power=self.tank_bottom_power,
            done_edge=Edge.RISING,
            done_level=HIGH,
            max_ticks=self.pot_fill_max_ticks,
            blocked=lambda: self.state.watering_blocked(self.clock()),
        )

    async def _fill(
        self,
        name: str,
        pump: RelayBase,
        sensor: DigitalPin,
        power: DigitalPin,
        done_edge: Edge,
        done_level: int,
        max_ticks: int,
        blocked: Callable[[], bool],
    ) -> FillOutcome:
        async with self.lock:
            self.last_ticks = 0
            self.last_timeout = None
            if blocked():
                logger.info("%s skipped: watering blocked", name)
                return FillOutcome.INTERLOCKED

            loop = asyncio.get_running_loop()
            watch: EdgeWatch | None = None
            pumped = False
            started = perf_counter()
            outcome = FillOutcome.TIMED_OUT
            power.write(HIGH)
            try:
                await asyncio.sleep(self.settle)
                if blocked():
                    outcome = FillOutcome.INTERLOCKED
                    return outcome
                if self._already_done(name, sensor, done_level):
                    outcome = FillOutcome.FULL
                    return outcome

                watch = EdgeWatch(sensor, done_edge, loop, on_edge=pump.turn_off, debounce_ms=self.debounce_ms).open()
                pump.turn_on()
                pumped = True
                logger.debug("%s started", name)

                for tick in range(1, max_ticks + 1):
                    self.last_ticks = tick
                    try:
                        await asyncio.wait_for(watch.event.wait(), timeout=self.poll_interval)
                    except asyncio.TimeoutError:
                        pass
                    if watch.fired:
                        outcome = FillOutcome.FULL
                        break
                    if blocked():
                        outcome = FillOutcome.INTERLOCKED
                        break
                else:
                    outcome = FillOutcome.TIMED_OUT
                return outcome
            finally:
                if watch is not None:
                    watch.close()
                pump.turn_off()
                try:
                    power.write(LOW)
                except DeviceError as e:
                    logger.error("Failed to power down %s: %s", sensor.role, e)
                self._report(name, pump, outcome, pumped, perf_counter() - started)

    def _already_done(self, name: str, sensor: DigitalPin, done_level: int) -> bool:
        try:
            return sensor.read() == done_level
        except DeviceError as e:
            # The edge watch and the tick cap still bound the fill
            logger.warning("%s pre-check unreadable, filling with cap: %s", name, e)
            return False

    def _report(self, name: str, pump: RelayBase, outcome: FillOutcome, pumped: bool, elapsed: float) -> None:
        if outcome == FillOutcome.TIMED_OUT:
            # returned as TIMED_OUT, kept here for the cycle report
            self.last_timeout = ActuationTimeout(
                f"{name} timed out after {self.last_ticks} ticks ({elapsed:.1f}s)",
                detail={"fill": name, "device": pump.get_device(), "ticks": self.last_ticks, "seconds": round(elapsed, 2)},
            )
            logger.warning("%s", self.last_timeout, extra={"detail": self.last_timeout.detail})
        else:
            logger.info("%s finished: %s after %s ticks (%.1fs)", name, outcome.value, self.last_ticks, elapsed)
        if pumped and self.audit is not None:
            self.audit.log_event(
                "watering_actuator", name, pump.get_device(), outcome.value, ticks=self.last_ticks, seconds=round(elapsed, 2)
            )
