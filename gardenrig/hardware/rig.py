"""
Rig Hardware

Builds every pin, relay and sensor the rig uses from a PinMap, enforcing that
each BCM pin is owned by exactly one role.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from gardenrig.config import ControllerConfig
from gardenrig.domain.exceptions import ConfigurationError, DeviceError
from gardenrig.hardware.actuators.gpio_relay import GPIORelay
from gardenrig.hardware.gpio.pin import LOW, DigitalPin, GPIOPin, MemoryPin, PinDirection, gpio_available
from gardenrig.hardware.sensors.drivers.base import BaseSensorDriver, MemoryClimateSensor

logger = logging.getLogger(__name__)


class PinRegistry:
    """
    Hands out pins by role.

    A second claim on an already owned pin raises ConfigurationError, so a
    wiring mistake stops the controller at startup instead of driving a pump
    from a sensor line.
    """

    def __init__(self, use_memory: bool = False):
        self.use_memory = use_memory
        self._owners: dict[int, str] = {}
        self._pins: dict[str, DigitalPin] = {}

    def claim(self, role: str, pin: int) -> DigitalPin:
        if pin in self._owners:
            raise ConfigurationError(
                f"GPIO {pin} assigned to both {self._owners[pin]} and {role}",
                detail={"pin": pin, "roles": [self._owners[pin], role]},
            )
        if role in self._pins:
            raise ConfigurationError(f"Role {role} claimed twice", detail={"role": role})
        self._owners[pin] = role
        handle = MemoryPin(pin, role) if self.use_memory else GPIOPin(pin, role)
        self._pins[role] = handle
        return handle

    def input(self, role: str, pin: int) -> DigitalPin:
        handle = self.claim(role, pin)
        handle.configure(PinDirection.INPUT)
        return handle

    def output(self, role: str, pin: int, initial: int = LOW) -> DigitalPin:
        handle = self.claim(role, pin)
        handle.configure(PinDirection.OUTPUT, initial=initial)
        return handle

    def get(self, role: str) -> DigitalPin:
        return self._pins[role]

    @property
    def roles(self) -> dict[str, int]:
        return {role: handle.pin for role, handle in self._pins.items()}

    def cleanup_all(self) -> None:
        for handle in self._pins.values():
            handle.cleanup()
        logger.info("Released %s GPIO pins", len(self._pins))


@dataclass
class RigHardware:
    """Every device on the rig, grouped by what the control loops need."""

    registry: PinRegistry
    moisture_sensors: list[DigitalPin]
    moisture_power: DigitalPin
    pot_pumps: list[GPIORelay]
    main_pump: GPIORelay
    tank_level_sensor: DigitalPin
    tank_bottom_sensor: DigitalPin
    tank_bottom_power: DigitalPin
    tank_top_sensor: DigitalPin
    tank_top_power: DigitalPin
    safety_switches: list[DigitalPin]
    fan: GPIORelay
    climate_sensor: BaseSensorDriver | None = None

    @property
    def pumps(self) -> list[GPIORelay]:
        return [self.main_pump, *self.pot_pumps]

    def all_off(self) -> None:
        """De-energize every load and sense line."""
        for relay in [*self.pumps, self.fan]:
            relay.turn_off()
        for power in (self.moisture_power, self.tank_bottom_power, self.tank_top_power):
            try:
                power.write(LOW)
            except DeviceError as e:
                logger.error("Error switching off %s: %s", power.role, e)

    def cleanup(self) -> None:
        self.all_off()
        if self.climate_sensor is not None:
            self.climate_sensor.cleanup()
        self.registry.cleanup_all()


def build_rig_hardware(config: ControllerConfig, climate_sensor: BaseSensorDriver | None = None) -> RigHardware:
    """
    Claim and configure every pin in ``config.pins``.

    Memory pins are used when ``use_mock_gpio`` is set or RPi.GPIO cannot be
    loaded (development host).
    """
    use_memory = config.use_mock_gpio
    if not use_memory and not gpio_available():
        logger.warning("GPIO is not available. Running with in-memory pins.")
        use_memory = True

    pins = config.pins
    registry = PinRegistry(use_memory=use_memory)

    moisture_sensors = [
        registry.input(f"moisture_sensor[{index}]", pin) for index, pin in enumerate(pins.moisture_sensors)
    ]
    pot_pumps = [
        GPIORelay(f"pot_pump[{index}]", registry.claim(f"pot_pump[{index}]", pin))
        for index, pin in enumerate(pins.pot_pumps)
    ]
    safety_switches = [
        registry.input(f"safety_switch[{index}]", pin) for index, pin in enumerate(pins.safety_switches)
    ]

    if climate_sensor is None:
        climate_sensor = _build_climate_sensor(config, use_memory)

    hardware = RigHardware(
        registry=registry,
        moisture_sensors=moisture_sensors,
        moisture_power=registry.output("moisture_power", pins.moisture_power),
        pot_pumps=pot_pumps,
        main_pump=GPIORelay("main_pump", registry.claim("main_pump", pins.main_pump)),
        tank_level_sensor=registry.input("tank_level_sensor", pins.tank_level_sensor),
        tank_bottom_sensor=registry.input("tank_bottom_sensor", pins.tank_bottom_sensor),
        tank_bottom_power=registry.output("tank_bottom_power", pins.tank_bottom_power),
        tank_top_sensor=registry.input("tank_top_sensor", pins.tank_top_sensor),
        tank_top_power=registry.output("tank_top_power", pins.tank_top_power),
        safety_switches=safety_switches,
        fan=GPIORelay("fan", registry.claim("fan_relay", pins.fan_relay)),
        climate_sensor=climate_sensor,
    )
    logger.info("Claimed %s pins (%s)", len(registry.roles), "memory" if use_memory else "RPi.GPIO")
    return hardware


def _build_climate_sensor(config: ControllerConfig, use_memory: bool) -> BaseSensorDriver | None:
    # The DHT data line is driven by adafruit_dht, not RPi.GPIO, so it is not claimed here.
    if use_memory:
        return MemoryClimateSensor()
    from gardenrig.hardware.sensors.drivers.dht22_sensor import DHT22Sensor

    try:
        return DHT22Sensor(config.pins.dht_data, retries=config.dht_retries, retry_delay=config.dht_retry_delay)
    except DeviceError as e:
        logger.error("Climate sensor unavailable, thermal control disabled: %s", e)
        return None
