"""
Controller Constants
====================

Centralized constants to replace magic numbers throughout the codebase.
Organized by domain for easy discovery and maintenance.

Pin numbers use BCM (Broadcom) numbering. Relay boards on the rig are
active-LOW: writing HIGH de-energizes a pump or fan.

Usage:
    from gardenrig.constants import Intervals, Timeouts, Limits
    from gardenrig.constants import DEFAULT_PIN_MAP
"""

from __future__ import annotations

from dataclasses import dataclass, field

POT_COUNT = 6


# =============================================================================
# Timing Constants (seconds unless otherwise noted)
# =============================================================================

class Timeouts:
    """Settle delays and polling bounds for hardware operations."""
    SENSOR_SETTLE = 0.1  # seconds after powering a sense line
    INTER_READ_DELAY = 0.05  # seconds between moisture sensor reads
    FILL_POLL_INTERVAL = 0.1  # seconds per fill polling tick

    TANK_REFILL_MAX_TICKS = 450  # 45 s at 100 ms
    POT_FILL_MAX_TICKS = 600  # 60 s at 100 ms

    GPIO_DEBOUNCE_MS = 10  # milliseconds

    DHT_RETRIES = 3
    DHT_RETRY_DELAY = 2.0  # seconds

    SELF_TEST_STEP = 1.0  # seconds each device is exercised


class Intervals:
    """Periodic cycle intervals."""
    IRRIGATION_CYCLE = 2 * 60 * 60  # seconds (2 hours)
    THERMAL_CYCLE = 15 * 60  # seconds (15 minutes)
    SAFETY_CHECK = 5  # seconds
    HISTORY_FLUSH = 60  # seconds

    SAFETY_REENABLE = 3 * 60 * 60  # seconds (3 hours)
    MANUAL_PAUSE_DEFAULT_MS = 60_000  # milliseconds


# =============================================================================
# Limits
# =============================================================================

class Limits:
    """Capacities and control thresholds."""
    DATA_HISTORY_LIMIT = 60  # irrigation cycles kept in memory
    SHUTDOWN_HISTORY_LIMIT = 300  # safety trips kept in memory
    DAY_IRRIGATION_LIMIT = 2  # dry detections (and fills) per pot per local day

    START_COOLING_TEMPERATURE_LIMIT = 30.0  # °C
    COOLING_HYSTERESIS = 1.0  # °C
    HUMIDITY_JUMP_THRESHOLD = 5.0  # percentage points

    IRRIGATION_DAY_START_HOUR = 8  # local hour, inclusive
    IRRIGATION_DAY_END_HOUR = 23  # local hour, inclusive

    DHT22_TEMPERATURE_RANGE = (-40.0, 80.0)
    DHT22_HUMIDITY_RANGE = (0.0, 100.0)


# =============================================================================
# Pin assignments
# =============================================================================

@dataclass(frozen=True)
class PinMap:
    """BCM pin assignment for every role on the rig."""

    moisture_sensors: tuple[int, ...] = (8, 7, 12, 16, 20, 21)
    moisture_power: int = 14  # shared sense line for all moisture probes
    pot_pumps: tuple[int, ...] = (11, 5, 6, 13, 19, 26)
    tank_level_sensor: int = 2  # main tank, LOW = empty
    main_pump: int = 3
    tank_bottom_sensor: int = 9  # small tank, rising edge = emptied
    tank_bottom_power: int = 10
    tank_top_sensor: int = 22  # small tank, falling edge = full
    tank_top_power: int = 27
    safety_switches: tuple[int, ...] = field(default=(17, 4))
    dht_data: int = 18
    fan_relay: int = 23

    def assignments(self) -> list[tuple[str, int]]:
        """Flatten the map into (role, pin) pairs."""
        pairs: list[tuple[str, int]] = []
        for index, pin in enumerate(self.moisture_sensors):
            pairs.append((f"moisture_sensor[{index}]", pin))
        for index, pin in enumerate(self.pot_pumps):
            pairs.append((f"pot_pump[{index}]", pin))
        for index, pin in enumerate(self.safety_switches):
            pairs.append((f"safety_switch[{index}]", pin))
        for role in (
            "moisture_power",
            "tank_level_sensor",
            "main_pump",
            "tank_bottom_sensor",
            "tank_bottom_power",
            "tank_top_sensor",
            "tank_top_power",
            "dht_data",
            "fan_relay",
        ):
            pairs.append((role, getattr(self, role)))
        return pairs


DEFAULT_PIN_MAP = PinMap()
