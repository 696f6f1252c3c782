import asyncio
import logging

import pytest

from gardenrig.control_loops.thermal_controller import ThermalController
from gardenrig.domain.controller_state import ThermalState
from gardenrig.hardware.actuators.gpio_relay import GPIORelay
from gardenrig.hardware.gpio.pin import MemoryPin
from gardenrig.hardware.sensors.drivers.base import MemoryClimateSensor


@pytest.fixture()
def thermal():
    sensor = MemoryClimateSensor(temperature=24.0, humidity=50.0)
    fan = GPIORelay("fan", MemoryPin(23, "fan_relay"))
    controller = ThermalController(sensor, fan, ThermalState(), cooling_limit=30.0, hysteresis=1.0)
    return controller, sensor, fan


def _run(controller, cycles):
    async def scenario():
        return [await controller.run_cycle() for _ in range(cycles)]

    return asyncio.run(scenario())


def test_fan_follows_temperature_with_hysteresis(thermal):
    controller, sensor, fan = thermal
    sensor.queue((24.0, 50.0), (31.0, 50.0), (30.5, 50.0), (29.5, 50.0), (29.0, 50.0), (30.0, 50.0))

    states = []
    for _ in range(6):
        _run(controller, 1)
        states.append(fan.is_on)

    assert states == [False, True, True, True, False, False]
    assert controller.state.cooling_active is False
    assert controller.state.last_temperature == 30.0


def test_sensor_failure_keeps_cooling_state(thermal):
    controller, sensor, fan = thermal
    sensor.queue((32.0, 50.0), None)

    results = _run(controller, 2)

    assert results == [True, False]
    assert fan.is_on is True
    assert controller.state.cooling_active is True
    assert controller.failed_samples == 1


def test_humidity_jump_is_logged(thermal, caplog):
    controller, sensor, _ = thermal
    sensor.queue((24.0, 50.0), (24.0, 52.0), (24.0, 60.0))

    with caplog.at_level(logging.INFO, logger="gardenrig.control_loops.thermal_controller"):
        _run(controller, 3)

    jumps = [r for r in caplog.records if "Humidity rose" in r.getMessage()]
    assert len(jumps) == 1
    assert controller.state.last_humidity == 60.0


def test_missing_sensor_is_a_noop():
    fan = GPIORelay("fan", MemoryPin(23, "fan_relay"))
    controller = ThermalController(None, fan, ThermalState())

    assert _run(controller, 1) == [False]
    assert fan.pin.writes == []


def test_cycle_timing_is_tracked(thermal):
    controller, _, _ = thermal
    _run(controller, 2)
    assert controller.performance_metrics.to_dict()["thermal_cycle"]["count"] == 2
