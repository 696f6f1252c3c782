"""
IrrigationController: the process control surface of the rig.

Owns the ControllerState and wires the sampler, history store, safety
interlock, watering actuator and thermal controller into the four periodic
cycles run by the CycleScheduler.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from gardenrig.config import ControllerConfig
from gardenrig.constants import Intervals
from gardenrig.control_loops.moisture_sampler import MoistureSampler
from gardenrig.control_loops.safety_interlock import SafetyInterlock
from gardenrig.control_loops.thermal_controller import ThermalController
from gardenrig.control_loops.watering_actuator import WateringActuator
from gardenrig.domain.controller_state import ControllerState
from gardenrig.domain.exceptions import DeviceError, GardenRigError, SensorReadError
from gardenrig.domain.moisture import MoistureSnapshot
from gardenrig.enums.irrigation import CycleKind, FillOutcome, IrrigationSkipReason
from gardenrig.hardware.gpio.pin import HIGH, LOW, DigitalPin
from gardenrig.hardware.rig import RigHardware, build_rig_hardware
from gardenrig.services.history_store import HistoryStore, SnapshotStore
from gardenrig.utils.time import to_local, utc_now
from gardenrig.workers.cycle_scheduler import CycleScheduler
from infrastructure.logging.audit import AuditLogger
from infrastructure.persistence.json_store import JsonFileStore

logger = logging.getLogger(__name__)


@dataclass
class IrrigationCycleReport:
    """What one irrigation cycle saw and did."""

    started_at: datetime
    snapshot: MoistureSnapshot | None = None
    tank_empty: bool = False
    outside_window: bool = False
    watered: list[int] = field(default_factory=list)
    skipped: dict[int, IrrigationSkipReason] = field(default_factory=dict)
    refill_outcomes: dict[int, FillOutcome] = field(default_factory=dict)
    fill_outcomes: dict[int, FillOutcome] = field(default_factory=dict)
    errors: dict[int, str] = field(default_factory=dict)
    timeouts: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "snapshot": self.snapshot.to_list() if self.snapshot else None,
            "tank_empty": self.tank_empty,
            "outside_window": self.outside_window,
            "watered": list(self.watered),
            "skipped": {pot: reason.value for pot, reason in self.skipped.items()},
            "refill_outcomes": {pot: outcome.value for pot, outcome in self.refill_outcomes.items()},
            "fill_outcomes": {pot: outcome.value for pot, outcome in self.fill_outcomes.items()},
            "errors": dict(self.errors),
            "timeouts": [dict(timeout) for timeout in self.timeouts],
        }


class IrrigationController:
    """
    Runs the rig.

    Usage:
        controller = create_controller(load_config())
        await controller.self_test()
        await controller.run()          # until shutdown()
    """

    def __init__(
        self,
        config: ControllerConfig,
        hardware: RigHardware,
        persistence: SnapshotStore | None = None,
        audit: AuditLogger | None = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.hardware = hardware
        self.audit = audit
        self.clock = clock
        self._sleep = sleep

        self.state = ControllerState.create(config.history_capacity, config.shutdown_log_capacity)
        self.history = HistoryStore(
            self.state,
            persistence,
            pot_count=config.pot_count,
            offset_hours=config.local_utc_offset_hours,
            clock=clock,
        )
        self.sampler = MoistureSampler(config.sensor_settle, config.inter_read_delay, sleep=sleep)
        self.interlock = SafetyInterlock(
            hardware.safety_switches,
            hardware.main_pump,
            self.state.safety,
            self.history,
            reenable_interval=config.safety_reenable_interval,
            audit=audit,
            clock=clock,
        )
        self.actuator = WateringActuator(
            self.state,
            hardware.main_pump,
            hardware.pot_pumps,
            tank_top_sensor=hardware.tank_top_sensor,
            tank_top_power=hardware.tank_top_power,
            tank_bottom_sensor=hardware.tank_bottom_sensor,
            tank_bottom_power=hardware.tank_bottom_power,
            poll_interval=config.fill_poll_interval,
            tank_refill_max_ticks=config.tank_refill_max_ticks,
            pot_fill_max_ticks=config.pot_fill_max_ticks,
            settle=config.sensor_settle,
            debounce_ms=config.gpio_debounce_ms,
            audit=audit,
            clock=clock,
        )
        self.thermal = ThermalController(
            hardware.climate_sensor,
            hardware.fan,
            self.state.thermal,
            cooling_limit=config.start_cooling_temperature,
            hysteresis=config.cooling_hysteresis,
            humidity_jump_threshold=config.humidity_jump_threshold,
            audit=audit,
        )
        self.scheduler = CycleScheduler()
        self.last_report: IrrigationCycleReport | None = None

        self._stop_requested: asyncio.Event | None = None
        self._running = False
        self._closed = False
        self._history_loaded = False

    # ------------------------------------------------------------------
    # Irrigation cycle
    # ------------------------------------------------------------------

    def in_irrigation_window(self, now: datetime | None = None) -> bool:
        hour = to_local(now or self.clock(), self.config.local_utc_offset_hours).hour
        return self.config.irrigation_day_start_hour <= hour <= self.config.irrigation_day_end_hour

    def main_tank_empty(self) -> bool:
        """Main tank level switch reads LOW when empty; unreadable counts as empty."""
        try:
            return self.hardware.tank_level_sensor.read() == LOW
        except DeviceError as e:
            logger.warning("Main tank level unreadable, treating as empty: %s", e)
            return True

    async def run_irrigation_cycle(self) -> IrrigationCycleReport:
        """
        Sample every pot and water the dry ones that are still allowed today.

        The snapshot is recorded whether or not anything was watered.
        """
        now = self.clock()
        report = IrrigationCycleReport(started_at=now)
        if not self.in_irrigation_window(now):
            report.outside_window = True
            logger.info("Irrigation cycle skipped: outside watering hours")
            self.last_report = report
            return report

        snapshot = await self.sampler.sample(self.hardware.moisture_sensors, self.hardware.moisture_power)
        report.snapshot = snapshot
        report.tank_empty = self.main_tank_empty()
        counts = self.history.daily_counts(now)
        limit = self.config.day_irrigation_limit

        for pot in range(len(snapshot)):
            reason = self._skip_reason(snapshot, pot, report.tank_empty, counts[pot], limit)
            if reason is not None:
                report.skipped[pot] = reason
                continue
            try:
                await self._water_pot(pot, report)
            except GardenRigError as e:
                report.errors[pot] = str(e)
                logger.error("Watering pot %s failed: %s", pot, e)

        self.history.record(snapshot, at=now)
        self.last_report = report
        logger.info(
            "Irrigation cycle done: dry %s, watered %s, tank %s",
            snapshot.dry_pots,
            report.watered,
            "empty" if report.tank_empty else "ok",
        )
        return report

    def _skip_reason(
        self, snapshot: MoistureSnapshot, pot: int, tank_empty: bool, count: int, limit: int
    ) -> IrrigationSkipReason | None:
        if not snapshot.is_dry(pot):
            return IrrigationSkipReason.WET
        if tank_empty:
            return IrrigationSkipReason.TANK_EMPTY
        if count >= limit:
            return IrrigationSkipReason.DAILY_LIMIT
        if self.interlock.is_active:
            return IrrigationSkipReason.INTERLOCKED
        if self.state.is_paused(self.clock()):
            return IrrigationSkipReason.PAUSED
        return None

    async def _water_pot(self, pot: int, report: IrrigationCycleReport) -> None:
        refill = await self.actuator.tank_refill()
        report.refill_outcomes[pot] = refill
        if refill == FillOutcome.INTERLOCKED:
            report.skipped[pot] = IrrigationSkipReason.REFILL_INTERLOCKED
            return
        if refill == FillOutcome.TIMED_OUT:
            self._note_timeout(pot, report)
            logger.warning("Tank refill timed out before pot %s; filling with what is there", pot)

        outcome = await self.actuator.pot_fill(pot)
        report.fill_outcomes[pot] = outcome
        if outcome == FillOutcome.TIMED_OUT:
            self._note_timeout(pot, report)
        if outcome == FillOutcome.INTERLOCKED:
            report.skipped[pot] = IrrigationSkipReason.INTERLOCKED
        else:
            report.watered.append(pot)

    def _note_timeout(self, pot: int, report: IrrigationCycleReport) -> None:
        timeout = self.actuator.last_timeout
        if timeout is not None:
            report.timeouts.append({"pot": pot, **timeout.detail})

    # ------------------------------------------------------------------
    # Periodic cycles
    # ------------------------------------------------------------------

    async def run_safety_check(self) -> bool:
        return self.interlock.check()

    async def run_thermal_cycle(self) -> bool:
        return await self.thermal.run_cycle()

    async def run_history_flush(self) -> bool:
        return await self.history.flush_async()

    async def load_history(self) -> bool:
        """
        Restore persisted history once per process.

        Later calls are no-ops so entries recorded since, such as a safety trip
        during self_test, are not replaced by the older snapshot.
        """
        if self._history_loaded:
            return False
        self._history_loaded = True
        return await self.history.restore_async()

    def _schedule_cycles(self) -> None:
        config = self.config
        self.scheduler.schedule_interval(
            "irrigation", self.run_irrigation_cycle, config.irrigation_interval,
            run_immediately=True, kind=CycleKind.IRRIGATION,
        )
        self.scheduler.schedule_interval(
            "thermal", self.run_thermal_cycle, config.thermal_interval,
            run_immediately=True, kind=CycleKind.THERMAL,
        )
        self.scheduler.schedule_interval(
            "safety", self.run_safety_check, config.safety_interval, kind=CycleKind.SAFETY
        )
        self.scheduler.schedule_interval(
            "history_flush", self.run_history_flush, config.flush_interval, kind=CycleKind.HISTORY_FLUSH
        )

    # ------------------------------------------------------------------
    # Process control surface
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Restore history, start every cycle and run until shutdown() is called."""
        if self._running:
            raise RuntimeError("controller already running")
        self._running = True
        self._stop_requested = asyncio.Event()

        await self.load_history()
        self._schedule_cycles()
        self.scheduler.start()
        logger.info("Irrigation controller running with %s pots", self.config.pot_count)
        try:
            await self._stop_requested.wait()
        finally:
            await self._teardown()
            self._running = False

    def request_stop(self) -> None:
        """Ask a running controller to stop; safe to call from a signal handler."""
        if self._stop_requested is not None:
            self._stop_requested.set()

    async def shutdown(self) -> None:
        """
        Stop cleanly: cycles stopped, pumps off, final flush, pins released.

        When run() is active this only signals it; run() performs the teardown
        before returning.
        """
        if self._running:
            self.request_stop()
            return
        await self._teardown()

    async def _teardown(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.scheduler.stop()
        self.interlock.cancel()
        if self._history_loaded:
            await self.history.flush_async(force=True)
        else:
            # the in-memory stores never saw the snapshot on disk
            logger.warning("History was never loaded; leaving the persisted snapshot untouched")
        self.hardware.cleanup()
        logger.info("Irrigation controller stopped")

    async def self_test(self) -> dict[str, str]:
        """
        Exercise every pump, the fan and every sense line once, in turn.

        Each load is energized for ``self_test_step`` seconds. The main pump is
        left alone while the safety interlock is active. Returns the result
        per device: ``ok``, ``skipped`` or the error text.
        """
        results: dict[str, str] = {}
        hw = self.hardware
        step = self.config.self_test_step
        await self.load_history()

        async with self.actuator.lock:
            if self.interlock.check() or self.interlock.is_active:
                results["main_pump"] = "skipped"
                logger.warning("Self-test: main pump skipped, safety interlock active")
            else:
                results["main_pump"] = await self._exercise_relay(hw.main_pump, step)

            for pump in hw.pot_pumps:
                results[pump.get_device()] = await self._exercise_relay(pump, step)
            results[hw.fan.get_device()] = await self._exercise_relay(hw.fan, step)

            for power in (hw.moisture_power, hw.tank_bottom_power, hw.tank_top_power):
                results[power.role] = await self._exercise_power(power, step)

            for sensor in [*hw.moisture_sensors, hw.tank_level_sensor, *hw.safety_switches]:
                results[sensor.role] = self._probe(sensor)

        if hw.climate_sensor is not None:
            try:
                reading = await asyncio.to_thread(hw.climate_sensor.sample)
                results["climate_sensor"] = "ok"
                logger.info(
                    "Self-test: climate %.1f°C %.1f%%", reading["temperature"], reading["humidity"]
                )
            except SensorReadError as e:
                results["climate_sensor"] = str(e)
        else:
            results["climate_sensor"] = "skipped"

        failed = [device for device, result in results.items() if result not in ("ok", "skipped")]
        if failed:
            logger.warning("Self-test finished with failures: %s", failed)
        else:
            logger.info("Self-test passed for %s devices", len(results))
        if self.audit is not None:
            self.audit.log_event("controller", "self_test", "rig", "failed" if failed else "ok", failed=failed)
        return results

    async def _exercise_relay(self, relay, step: float) -> str:
        try:
            relay.turn_on()
            await self._sleep(step)
        except DeviceError as e:
            logger.error("Self-test: %s failed: %s", relay.get_device(), e)
            return str(e)
        finally:
            relay.turn_off()
        return "ok"

    async def _exercise_power(self, power: DigitalPin, step: float) -> str:
        try:
            power.write(HIGH)
            await self._sleep(step)
            power.write(LOW)
        except DeviceError as e:
            logger.error("Self-test: %s failed: %s", power.role, e)
            return str(e)
        return "ok"

    def _probe(self, sensor: DigitalPin) -> str:
        try:
            level = sensor.read()
        except DeviceError as e:
            logger.error("Self-test: %s unreadable: %s", sensor.role, e)
            return str(e)
        logger.debug("Self-test: %s reads %s", sensor.role, "HIGH" if level == HIGH else "LOW")
        return "ok"

    async def manual_pause(self, duration_ms: int = Intervals.MANUAL_PAUSE_DEFAULT_MS) -> list[int]:
        """
        Hold every pot pump off for ``duration_ms`` (maintenance).

        Pot fills in progress stop at their next tick with INTERLOCKED and no
        new fill starts until the window ends. Overlapping pauses extend the
        window. Returns the pots whose pumps were running when the pause began.
        """
        if duration_ms <= 0:
            raise ValueError("duration_ms must be positive")
        until = self.clock() + timedelta(milliseconds=duration_ms)
        if self.state.paused_until is None or until > self.state.paused_until:
            self.state.paused_until = until

        interrupted = [pot for pot, pump in enumerate(self.hardware.pot_pumps) if pump.is_on]
        for pump in self.hardware.pot_pumps:
            pump.turn_off()
        logger.info("Pot pumps paused until %s (interrupted %s)", self.state.paused_until.isoformat(), interrupted)
        if self.audit is not None:
            self.audit.log_event(
                "controller", "manual_pause", "pot_pumps", "paused",
                until=self.state.paused_until.isoformat(), interrupted=interrupted,
            )

        await self._sleep(duration_ms / 1000.0)

        if self.state.paused_until is not None and self.state.paused_until <= self.clock():
            self.state.paused_until = None
            logger.info("Manual pause over; pot pumps back under cycle control")
            if self.audit is not None:
                self.audit.log_event("controller", "manual_pause", "pot_pumps", "resumed")
        return interrupted

    def get_status(self) -> dict[str, Any]:
        return {
            "safety": self.state.safety.to_dict(),
            "thermal": self.state.thermal.to_dict(),
            "paused_until": self.state.paused_until.isoformat() if self.state.paused_until else None,
            "history_size": len(self.history.moisture),
            "shutdown_log_size": len(self.history.shutdowns),
            "daily_counts": self.history.daily_counts(),
            "last_cycle": self.last_report.to_dict() if self.last_report else None,
            "jobs": self.scheduler.get_jobs(),
            "thermal_metrics": self.thermal.performance_metrics.to_dict(),
            "safety_trip_count": self.interlock.trip_count,
            "last_safety_trip": (
                {"message": str(self.interlock.last_trip), **self.interlock.last_trip.detail}
                if self.interlock.last_trip
                else None
            ),
            "moisture_failed_reads": self.sampler.failed_reads,
            "thermal_failed_samples": self.thermal.failed_samples,
        }


def create_controller(
    config: ControllerConfig,
    hardware: RigHardware | None = None,
    persistence: SnapshotStore | None = None,
    audit: AuditLogger | None = None,
) -> IrrigationController:
    """Build a controller with real pins (or memory pins off the Pi) and file-backed storage."""
    hardware = hardware or build_rig_hardware(config)
    if persistence is None:
        persistence = JsonFileStore(config.data_dir)
    if audit is None:
        audit = AuditLogger(config.audit_log_path)
    return IrrigationController(config, hardware, persistence=persistence, audit=audit)
