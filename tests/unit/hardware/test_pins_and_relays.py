from types import SimpleNamespace

import pytest

from gardenrig.config import ControllerConfig
from gardenrig.domain.exceptions import ConfigurationError, DeviceError
from gardenrig.enums.irrigation import Edge
from gardenrig.hardware.actuators.gpio_relay import GPIORelay
from gardenrig.hardware.gpio import pin as pin_module
from gardenrig.hardware.gpio.pin import HIGH, LOW, GPIOPin, MemoryPin, PinDirection
from gardenrig.hardware.rig import PinRegistry, build_rig_hardware


class StubGPIO:
    """Records RPi.GPIO calls."""

    BCM = "BCM"
    OUT = "OUT"
    IN = "IN"
    HIGH = 1
    LOW = 0
    RISING = "RISING"
    FALLING = "FALLING"
    BOTH = "BOTH"

    def __init__(self) -> None:
        self.calls = []
        self.levels = {}

    def setwarnings(self, flag):
        self.calls.append(("setwarnings", flag))

    def setmode(self, mode):
        self.calls.append(("setmode", mode))

    def setup(self, pin, direction, **kwargs):
        self.calls.append(("setup", pin, direction, kwargs))

    def input(self, pin):
        return self.levels.get(pin, 0)

    def output(self, pin, level):
        self.calls.append(("output", pin, level))
        self.levels[pin] = level

    def add_event_detect(self, pin, edge, callback=None, bouncetime=None):
        self.calls.append(("add_event_detect", pin, edge, bouncetime))

    def remove_event_detect(self, pin):
        self.calls.append(("remove_event_detect", pin))

    def cleanup(self, pin=None):
        self.calls.append(("cleanup", pin))


@pytest.fixture()
def stub_gpio(monkeypatch):
    gpio = StubGPIO()
    monkeypatch.setattr(pin_module, "_gpio_module", gpio)
    return gpio


def test_memory_pin_fires_only_matching_edges():
    pin = MemoryPin(22, "tank_top_sensor", level=HIGH)
    seen = []
    pin.watch(Edge.FALLING, seen.append)

    pin.set_level(HIGH)  # no change
    pin.set_level(LOW)  # falling
    pin.set_level(HIGH)  # rising, not watched

    assert seen == [22]


def test_memory_pin_unwatch_stops_callbacks():
    pin = MemoryPin(9, "tank_bottom_sensor")
    seen = []
    pin.watch(Edge.BOTH, seen.append)
    pin.set_level(HIGH)
    pin.unwatch()
    pin.set_level(LOW)
    assert seen == [9]
    assert pin.watching is False


def test_memory_pin_simulated_failures():
    pin = MemoryPin(2, "tank_level_sensor")
    pin.fail_reads = True
    with pytest.raises(DeviceError):
        pin.read()
    pin.fail_writes = True
    with pytest.raises(DeviceError):
        pin.write(HIGH)


def test_gpio_pin_uses_bcm_event_detect_with_debounce(stub_gpio):
    pin = GPIOPin(22, "tank_top_sensor")
    pin.configure(PinDirection.INPUT)
    pin.watch(Edge.FALLING, lambda channel: None, debounce_ms=10)
    pin.cleanup()

    assert ("setup", 22, "IN", {}) in stub_gpio.calls
    assert ("add_event_detect", 22, "FALLING", 10) in stub_gpio.calls
    assert ("remove_event_detect", 22) in stub_gpio.calls
    assert ("cleanup", 22) in stub_gpio.calls


def test_gpio_pin_wraps_runtime_errors(stub_gpio):
    def broken_output(pin, level):
        raise RuntimeError("channel not set up")

    stub_gpio.output = broken_output
    pin = GPIOPin(3, "main_pump")
    with pytest.raises(DeviceError):
        pin.write(LOW)


def test_relay_is_active_low_and_starts_off():
    pin = MemoryPin(3, "main_pump", level=LOW)
    relay = GPIORelay("main_pump", pin)

    assert pin.level == HIGH
    assert pin.direction == PinDirection.OUTPUT
    relay.turn_on()
    assert pin.level == LOW
    assert relay.is_on is True
    assert relay.turn_off() is True
    assert pin.level == HIGH
    assert relay.is_on is False


def test_relay_turn_off_never_raises():
    pin = MemoryPin(3, "main_pump")
    relay = GPIORelay("main_pump", pin)
    relay.turn_on()
    pin.fail_writes = True
    assert relay.turn_off() is False


def test_relay_turn_on_raises_device_error():
    pin = MemoryPin(11, "pot_pump[0]")
    relay = GPIORelay("pot_pump[0]", pin)
    pin.fail_writes = True
    with pytest.raises(DeviceError):
        relay.turn_on()
    assert relay.is_on is False


def test_registry_rejects_second_owner():
    registry = PinRegistry(use_memory=True)
    registry.input("safety_switch[0]", 17)
    with pytest.raises(ConfigurationError):
        registry.output("fan_relay", 17)


def test_build_rig_hardware_claims_every_role():
    config = ControllerConfig(use_mock_gpio=True)
    hw = build_rig_hardware(config)

    roles = hw.registry.roles
    assert roles["main_pump"] == 3
    assert roles["moisture_power"] == 14
    assert roles["fan_relay"] == 23
    assert len(hw.pot_pumps) == 6
    assert len(hw.moisture_sensors) == 6
    assert all(pump.pin.level == HIGH for pump in hw.pumps)
    assert hw.climate_sensor is not None


def test_build_rig_hardware_falls_back_to_memory_pins(monkeypatch):
    monkeypatch.setattr("gardenrig.hardware.rig.gpio_available", lambda: False)
    config = ControllerConfig(use_mock_gpio=False)
    hw = build_rig_hardware(config, climate_sensor=SimpleNamespace(cleanup=lambda: None))
    assert isinstance(hw.main_pump.pin, MemoryPin)


def test_cleanup_leaves_everything_off():
    config = ControllerConfig(use_mock_gpio=True)
    hw = build_rig_hardware(config)
    hw.main_pump.turn_on()
    hw.fan.turn_on()
    hw.moisture_power.write(HIGH)

    hw.cleanup()

    assert hw.main_pump.is_on is False
    assert hw.fan.is_on is False
    assert hw.moisture_power.level == LOW
