import logging

import pytest

from gardenrig.config import ControllerConfig, load_config, setup_logging
from gardenrig.constants import DEFAULT_PIN_MAP, Intervals, Limits, PinMap
from gardenrig.domain.exceptions import ConfigurationError


def test_defaults_match_rig_constants():
    config = ControllerConfig()
    assert config.irrigation_interval == Intervals.IRRIGATION_CYCLE
    assert config.day_irrigation_limit == Limits.DAY_IRRIGATION_LIMIT
    assert config.history_capacity == 60
    assert config.shutdown_log_capacity == 300
    assert config.pot_fill_max_ticks == 600
    assert config.pins == DEFAULT_PIN_MAP
    assert config.pot_count == 6


def test_default_pin_map_has_no_conflicts():
    pins = [pin for _, pin in DEFAULT_PIN_MAP.assignments()]
    assert len(pins) == len(set(pins))


def test_duplicate_pin_is_rejected():
    pins = PinMap(fan_relay=DEFAULT_PIN_MAP.main_pump)
    with pytest.raises(ConfigurationError) as exc:
        ControllerConfig(pins=pins)
    assert exc.value.detail["pin"] == DEFAULT_PIN_MAP.main_pump
    assert set(exc.value.detail["roles"]) == {"main_pump", "fan_relay"}


def test_sensor_and_pump_counts_must_match():
    with pytest.raises(ConfigurationError):
        ControllerConfig(pins=PinMap(moisture_sensors=(8, 7, 12)))


def test_two_safety_switches_required():
    with pytest.raises(ConfigurationError):
        ControllerConfig(pins=PinMap(safety_switches=(17,)))


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("GARDENRIG_DAY_IRRIGATION_LIMIT", "4")
    monkeypatch.setenv("GARDENRIG_MOCK_GPIO", "yes")
    monkeypatch.setenv("GARDENRIG_PIN_FAN_RELAY", "24")
    monkeypatch.setenv("GARDENRIG_PIN_SAFETY_SWITCHES", "17, 25")

    config = load_config()

    assert config.day_irrigation_limit == 4
    assert config.use_mock_gpio is True
    assert config.pins.fan_relay == 24
    assert config.pins.safety_switches == (17, 25)


def test_bad_env_value_raises(monkeypatch):
    monkeypatch.setenv("GARDENRIG_POT_FILL_MAX_TICKS", "lots")
    with pytest.raises(ConfigurationError):
        load_config()


@pytest.mark.parametrize(
    "overrides",
    [
        {"fill_poll_interval": 0},
        {"tank_refill_max_ticks": 0},
        {"irrigation_day_start_hour": 24},
        {"irrigation_day_start_hour": 20, "irrigation_day_end_hour": 8},
        {"irrigation_interval": 180, "history_capacity": 3},
    ],
)
def test_invalid_values_rejected(overrides):
    with pytest.raises(ConfigurationError):
        load_config(overrides)


def test_unknown_override_rejected():
    with pytest.raises(ConfigurationError):
        load_config({"pump_speed": 3})


def test_setup_logging_does_not_duplicate_handlers(tmp_path):
    log_path = str(tmp_path / "logs" / "gardenrig.log")
    root = logging.getLogger()
    before = list(root.handlers)
    try:
        setup_logging(log_path=log_path)
        setup_logging(log_path=log_path)
        names = [getattr(h, "name", "") for h in root.handlers]
        assert names.count("gardenrig_console") == 1
        assert names.count("gardenrig_file") == 1
    finally:
        for handler in list(root.handlers):
            if handler not in before:
                root.removeHandler(handler)
                handler.close()


def test_history_capacity_must_cover_a_day_of_cycles():
    # 08:00 through 23:59 at one cycle per hour is 16 snapshots
    assert load_config({"irrigation_interval": 3600, "history_capacity": 16}).history_capacity == 16
    with pytest.raises(ConfigurationError) as excinfo:
        load_config({"irrigation_interval": 3600, "history_capacity": 15})
    assert excinfo.value.detail["cycles_per_day"] == 16
