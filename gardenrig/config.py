"""
Configuration for the garden rig controller
===========================================
Runtime settings for the control loops, loaded from environment variables
with Raspberry Pi friendly defaults. Sets up the logging configuration as well.
"""

import math
import os
from contextlib import suppress
from dataclasses import dataclass, field, fields, replace
from typing import Any

from gardenrig.constants import DEFAULT_PIN_MAP, Intervals, Limits, PinMap, Timeouts
from gardenrig.domain.exceptions import ConfigurationError
from gardenrig.utils.time import LOCAL_UTC_OFFSET_HOURS

ENV_PREFIX = "GARDENRIG_"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"Environment variable {name} must be an integer.") from None


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"Environment variable {name} must be a number.") from None


def _env_pins(name: str, default: tuple[int, ...]) -> tuple[int, ...]:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return tuple(int(part) for part in value.split(",") if part.strip())
    except ValueError:
        raise ConfigurationError(f"Environment variable {name} must be a comma separated pin list.") from None


def _load_pin_map() -> PinMap:
    """Build the pin map, letting GARDENRIG_PIN_<ROLE> override single roles."""
    overrides: dict[str, Any] = {}
    for pin_field in fields(PinMap):
        env_name = f"{ENV_PREFIX}PIN_{pin_field.name.upper()}"
        default = getattr(DEFAULT_PIN_MAP, pin_field.name)
        if isinstance(default, tuple):
            overrides[pin_field.name] = _env_pins(env_name, default)
        else:
            overrides[pin_field.name] = _env_int(env_name, default)
    return PinMap(**overrides)


@dataclass
class ControllerConfig:
    """Runtime configuration loaded from environment variables."""

    data_dir: str = field(default_factory=lambda: os.getenv("GARDENRIG_DATA_DIR", "var"))
    use_mock_gpio: bool = field(default_factory=lambda: _env_bool("GARDENRIG_MOCK_GPIO", False))

    # Logging
    debug: bool = field(default_factory=lambda: _env_bool("GARDENRIG_DEBUG", False))
    log_level: str = field(default_factory=lambda: os.getenv("GARDENRIG_LOG_LEVEL", "INFO"))
    log_path: str = field(default_factory=lambda: os.getenv("GARDENRIG_LOG_PATH", "logs/gardenrig.log"))
    audit_log_path: str = field(default_factory=lambda: os.getenv("GARDENRIG_AUDIT_LOG_PATH", "logs/audit.log"))

    # Cycle cadence (seconds)
    irrigation_interval: float = field(
        default_factory=lambda: _env_float("GARDENRIG_IRRIGATION_INTERVAL", Intervals.IRRIGATION_CYCLE)
    )
    thermal_interval: float = field(
        default_factory=lambda: _env_float("GARDENRIG_THERMAL_INTERVAL", Intervals.THERMAL_CYCLE)
    )
    safety_interval: float = field(
        default_factory=lambda: _env_float("GARDENRIG_SAFETY_INTERVAL", Intervals.SAFETY_CHECK)
    )
    flush_interval: float = field(
        default_factory=lambda: _env_float("GARDENRIG_FLUSH_INTERVAL", Intervals.HISTORY_FLUSH)
    )
    safety_reenable_interval: float = field(
        default_factory=lambda: _env_float("GARDENRIG_SAFETY_REENABLE_INTERVAL", Intervals.SAFETY_REENABLE)
    )

    # History
    history_capacity: int = field(
        default_factory=lambda: _env_int("GARDENRIG_HISTORY_CAPACITY", Limits.DATA_HISTORY_LIMIT)
    )
    shutdown_log_capacity: int = field(
        default_factory=lambda: _env_int("GARDENRIG_SHUTDOWN_LOG_CAPACITY", Limits.SHUTDOWN_HISTORY_LIMIT)
    )
    day_irrigation_limit: int = field(
        default_factory=lambda: _env_int("GARDENRIG_DAY_IRRIGATION_LIMIT", Limits.DAY_IRRIGATION_LIMIT)
    )
    local_utc_offset_hours: float = field(
        default_factory=lambda: _env_float("GARDENRIG_LOCAL_UTC_OFFSET_HOURS", LOCAL_UTC_OFFSET_HOURS)
    )
    irrigation_day_start_hour: int = field(
        default_factory=lambda: _env_int("GARDENRIG_IRRIGATION_DAY_START_HOUR", Limits.IRRIGATION_DAY_START_HOUR)
    )
    irrigation_day_end_hour: int = field(
        default_factory=lambda: _env_int("GARDENRIG_IRRIGATION_DAY_END_HOUR", Limits.IRRIGATION_DAY_END_HOUR)
    )

    # Sensing and fill bounds
    sensor_settle: float = field(default_factory=lambda: _env_float("GARDENRIG_SENSOR_SETTLE", Timeouts.SENSOR_SETTLE))
    inter_read_delay: float = field(
        default_factory=lambda: _env_float("GARDENRIG_INTER_READ_DELAY", Timeouts.INTER_READ_DELAY)
    )
    fill_poll_interval: float = field(
        default_factory=lambda: _env_float("GARDENRIG_FILL_POLL_INTERVAL", Timeouts.FILL_POLL_INTERVAL)
    )
    tank_refill_max_ticks: int = field(
        default_factory=lambda: _env_int("GARDENRIG_TANK_REFILL_MAX_TICKS", Timeouts.TANK_REFILL_MAX_TICKS)
    )
    pot_fill_max_ticks: int = field(
        default_factory=lambda: _env_int("GARDENRIG_POT_FILL_MAX_TICKS", Timeouts.POT_FILL_MAX_TICKS)
    )
    gpio_debounce_ms: int = field(
        default_factory=lambda: _env_int("GARDENRIG_GPIO_DEBOUNCE_MS", Timeouts.GPIO_DEBOUNCE_MS)
    )

    # Thermal control
    start_cooling_temperature: float = field(
        default_factory=lambda: _env_float(
            "GARDENRIG_START_COOLING_TEMPERATURE", Limits.START_COOLING_TEMPERATURE_LIMIT
        )
    )
    cooling_hysteresis: float = field(
        default_factory=lambda: _env_float("GARDENRIG_COOLING_HYSTERESIS", Limits.COOLING_HYSTERESIS)
    )
    humidity_jump_threshold: float = field(
        default_factory=lambda: _env_float("GARDENRIG_HUMIDITY_JUMP_THRESHOLD", Limits.HUMIDITY_JUMP_THRESHOLD)
    )
    dht_retries: int = field(default_factory=lambda: _env_int("GARDENRIG_DHT_RETRIES", Timeouts.DHT_RETRIES))
    dht_retry_delay: float = field(
        default_factory=lambda: _env_float("GARDENRIG_DHT_RETRY_DELAY", Timeouts.DHT_RETRY_DELAY)
    )

    self_test_step: float = field(
        default_factory=lambda: _env_float("GARDENRIG_SELF_TEST_STEP", Timeouts.SELF_TEST_STEP)
    )

    pins: PinMap = field(default_factory=_load_pin_map)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        for name in (
            "irrigation_interval",
            "thermal_interval",
            "safety_interval",
            "flush_interval",
            "safety_reenable_interval",
            "fill_poll_interval",
        ):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive", detail={name: getattr(self, name)})

        for name in ("history_capacity", "shutdown_log_capacity", "tank_refill_max_ticks", "pot_fill_max_ticks"):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be at least 1", detail={name: getattr(self, name)})

        if self.day_irrigation_limit < 0:
            raise ConfigurationError("day_irrigation_limit cannot be negative")
        if self.cooling_hysteresis < 0:
            raise ConfigurationError("cooling_hysteresis cannot be negative")

        for name in ("irrigation_day_start_hour", "irrigation_day_end_hour"):
            if not 0 <= getattr(self, name) <= 23:
                raise ConfigurationError(f"{name} must be an hour between 0 and 23")
        if self.irrigation_day_start_hour > self.irrigation_day_end_hour:
            raise ConfigurationError("irrigation day window starts after it ends")

        # daily counts are read from the moisture history, so one day of cycles must fit
        window = (self.irrigation_day_end_hour - self.irrigation_day_start_hour + 1) * 3600
        cycles_per_day = math.ceil(window / self.irrigation_interval)
        if self.history_capacity < cycles_per_day:
            raise ConfigurationError(
                "history_capacity cannot hold one day of irrigation cycles",
                detail={"history_capacity": self.history_capacity, "cycles_per_day": cycles_per_day},
            )

        self._validate_pins()

    def _validate_pins(self) -> None:
        pins = self.pins
        if len(pins.moisture_sensors) != len(pins.pot_pumps):
            raise ConfigurationError(
                "Every pot needs one moisture sensor and one pump",
                detail={"sensors": len(pins.moisture_sensors), "pumps": len(pins.pot_pumps)},
            )
        if not pins.pot_pumps:
            raise ConfigurationError("At least one pot must be configured")
        if len(pins.safety_switches) != 2:
            raise ConfigurationError("Exactly two safety switches are required")

        owners: dict[int, str] = {}
        for role, pin in pins.assignments():
            if pin in owners:
                raise ConfigurationError(
                    f"GPIO {pin} assigned to both {owners[pin]} and {role}",
                    detail={"pin": pin, "roles": [owners[pin], role]},
                )
            owners[pin] = role

    @property
    def pot_count(self) -> int:
        return len(self.pins.pot_pumps)


def setup_logging(debug: bool = False, log_path: str = "logs/gardenrig.log", level: str | None = None) -> None:
    """Setup logging configuration."""
    import logging
    import sys
    from logging.handlers import RotatingFileHandler

    if level:
        log_level = getattr(logging, level.upper(), logging.INFO)
    else:
        log_level = logging.DEBUG if debug else logging.INFO

    root = logging.getLogger()
    root.setLevel(log_level)

    # Avoid adding duplicate handlers when setup is called more than once
    has_console = any(getattr(h, "name", "") == "gardenrig_console" for h in root.handlers)
    has_file = any(getattr(h, "name", "") == "gardenrig_file" for h in root.handlers)
    added_handler = False

    stream = sys.stdout
    with suppress(AttributeError, ValueError):
        stream.reconfigure(encoding="utf-8", errors="replace")
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    if not has_console:
        console_handler = logging.StreamHandler(stream=stream)
        console_handler.name = "gardenrig_console"
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)
        added_handler = True

    if not has_file:
        log_dir = os.path.dirname(log_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.name = "gardenrig_file"
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
        added_handler = True

    for handler in root.handlers:
        if getattr(handler, "name", "") in {"gardenrig_console", "gardenrig_file"}:
            handler.setLevel(log_level)

    if added_handler:
        root.info("Logging initialized at level: %s", logging.getLevelName(log_level))

    # RPi.GPIO and the DHT driver are chatty at DEBUG
    logging.getLogger("adafruit_dht").setLevel(logging.WARNING)


def load_config(overrides: dict[str, Any] | None = None) -> ControllerConfig:
    """Helper for callers to load and validate configuration."""
    config = ControllerConfig()
    if overrides:
        unknown = set(overrides) - {f.name for f in fields(ControllerConfig)}
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")
        config = replace(config, **overrides)
    return config
