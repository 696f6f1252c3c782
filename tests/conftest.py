"""
Shared test fixtures for the garden rig controller test suite.

Provides:
- A fast configuration (no settle delays, short fill caps) on memory pins
- The full rig hardware built from in-memory pins
- A controllable UTC clock
- A water simulator that moves the small-tank level sensors when pumps run

Usage:
    def test_example(controller, water, set_moisture):
        set_moisture([True, False, False, False, False, False])
        report = asyncio.run(controller.run_irrigation_cycle())
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone

import pytest

from gardenrig.config import ControllerConfig
from gardenrig.controller import IrrigationController
from gardenrig.hardware.gpio.pin import HIGH, LOW
from gardenrig.hardware.rig import RigHardware, build_rig_hardware
from gardenrig.hardware.sensors.drivers.base import MemoryClimateSensor
from infrastructure.logging.audit import MemoryAuditLogger
from infrastructure.persistence.json_store import JsonFileStore

# ---------------------------------------------------------------------------
# Logging: keep test output clean
# ---------------------------------------------------------------------------
logging.getLogger("gardenrig").setLevel(logging.WARNING)
logging.getLogger("infrastructure").setLevel(logging.WARNING)


class FakeClock:
    """Callable UTC clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class WaterSimulator:
    """
    Moves the small tank's level sensors the way water would.

    Main pump on: the bottom sensor is covered at once, the top sensor
    reports full after ``delay``. Pot pump on: after ``delay`` the small tank
    has drained, so the top sensor reads not-full and the bottom sensor reads
    empty.
    """

    def __init__(self, hardware: RigHardware, delay: float = 0.02) -> None:
        self.hardware = hardware
        self.delay = delay
        self.refills = 0
        self.pot_runs = [0] * len(hardware.pot_pumps)

    def install(self) -> "WaterSimulator":
        hw = self.hardware
        main_on = hw.main_pump.turn_on

        def main_pump_on():
            main_on()
            self.refills += 1
            hw.tank_bottom_sensor.set_level(LOW)
            asyncio.get_running_loop().call_later(self.delay, hw.tank_top_sensor.set_level, LOW)

        hw.main_pump.turn_on = main_pump_on

        for pot, pump in enumerate(hw.pot_pumps):
            pump.turn_on = self._pot_pump_on(pot, pump.turn_on)
        return self

    def _pot_pump_on(self, pot, original):
        hw = self.hardware

        def drain():
            hw.tank_top_sensor.set_level(HIGH)
            hw.tank_bottom_sensor.set_level(HIGH)

        def pump_on():
            original()
            self.pot_runs[pot] += 1
            asyncio.get_running_loop().call_later(self.delay, drain)

        return pump_on


# ========================== Configuration ==================================


@pytest.fixture()
def fast_config(tmp_path) -> ControllerConfig:
    """Config with no settle delays and 10 ms fill ticks, on memory pins."""
    return ControllerConfig(
        data_dir=str(tmp_path / "var"),
        use_mock_gpio=True,
        log_path=str(tmp_path / "logs" / "gardenrig.log"),
        audit_log_path=str(tmp_path / "logs" / "audit.log"),
        sensor_settle=0.0,
        inter_read_delay=0.0,
        fill_poll_interval=0.01,
        tank_refill_max_ticks=30,
        pot_fill_max_ticks=30,
        safety_reenable_interval=0.05,
        self_test_step=0.0,
        dht_retries=1,
        dht_retry_delay=0.0,
    )


@pytest.fixture()
def clock() -> FakeClock:
    """10:00 UTC, which is noon on the rig's local clock."""
    return FakeClock(datetime(2026, 6, 15, 10, 0, tzinfo=timezone.utc))


# ========================== Hardware =======================================


@pytest.fixture()
def climate_sensor() -> MemoryClimateSensor:
    return MemoryClimateSensor(temperature=24.0, humidity=50.0)


@pytest.fixture()
def hardware(fast_config, climate_sensor) -> RigHardware:
    """
    Memory-pin rig in a healthy idle state: main tank has water, small tank
    is full, both safety switches closed, every probe wet.
    """
    hw = build_rig_hardware(fast_config, climate_sensor=climate_sensor)
    hw.tank_level_sensor.set_level(HIGH)
    hw.tank_top_sensor.set_level(LOW)
    hw.tank_bottom_sensor.set_level(LOW)
    for switch in hw.safety_switches:
        switch.set_level(LOW)
    for sensor in hw.moisture_sensors:
        sensor.set_level(LOW)
    return hw


@pytest.fixture()
def water(hardware) -> WaterSimulator:
    return WaterSimulator(hardware).install()


@pytest.fixture()
def set_moisture(hardware):
    """Set each probe from a list of dry flags."""

    def _set(dry_flags) -> None:
        for sensor, dry in zip(hardware.moisture_sensors, dry_flags):
            sensor.set_level(HIGH if dry else LOW)

    return _set


# ========================== Controller =====================================


@pytest.fixture()
def audit() -> MemoryAuditLogger:
    return MemoryAuditLogger()


@pytest.fixture()
def controller(fast_config, hardware, clock, audit) -> IrrigationController:
    """Controller on memory pins with a file store under tmp_path."""
    return IrrigationController(
        fast_config,
        hardware,
        persistence=JsonFileStore(fast_config.data_dir),
        audit=audit,
        clock=clock,
    )
