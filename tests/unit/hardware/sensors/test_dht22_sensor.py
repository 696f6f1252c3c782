import sys
from types import SimpleNamespace

import pytest

from gardenrig.domain.exceptions import DeviceError, SensorReadError
from gardenrig.hardware.sensors.drivers.base import MemoryClimateSensor
from gardenrig.hardware.sensors.drivers.dht22_sensor import DHT22Sensor


class StubDHT22:
    def __init__(self, pin, use_pulseio=True):
        self.pin = pin
        self.readings = []
        self.exited = False

    def _next(self):
        reading = self.readings.pop(0) if self.readings else (None, None)
        if isinstance(reading, Exception):
            raise reading
        return reading

    @property
    def temperature(self):
        self._current = self._next()
        return self._current[0]

    @property
    def humidity(self):
        return self._current[1]

    def exit(self):
        self.exited = True


@pytest.fixture()
def dht_modules(monkeypatch):
    monkeypatch.setitem(sys.modules, "adafruit_dht", SimpleNamespace(DHT22=StubDHT22))
    monkeypatch.setitem(sys.modules, "board", SimpleNamespace(D18="D18"))


def test_sample_retries_checksum_errors(dht_modules):
    sensor = DHT22Sensor(18, retries=3, retry_delay=0)
    sensor.sensor.readings = [RuntimeError("Checksum did not validate"), (31.2, 55.0)]

    reading = sensor.sample()

    assert reading["temperature"] == 31.2
    assert reading["humidity"] == 55.0
    assert reading["status"] == "OK"


def test_sample_rejects_out_of_range_values(dht_modules):
    sensor = DHT22Sensor(18, retries=2, retry_delay=0)
    sensor.sensor.readings = [(120.0, 50.0), (25.0, 140.0)]

    with pytest.raises(SensorReadError):
        sensor.sample()


def test_sample_raises_after_all_retries(dht_modules):
    sensor = DHT22Sensor(18, retries=2, retry_delay=0)
    sensor.sensor.readings = [RuntimeError("timeout"), RuntimeError("timeout")]

    with pytest.raises(SensorReadError) as exc:
        sensor.sample()
    assert exc.value.detail == {"pin": 18}


def test_invalid_board_pin(dht_modules):
    with pytest.raises(DeviceError):
        DHT22Sensor(99)


def test_cleanup_releases_sensor(dht_modules):
    sensor = DHT22Sensor(18)
    sensor.cleanup()
    assert sensor.sensor.exited is True


def test_memory_climate_sensor_queue_and_failure():
    sensor = MemoryClimateSensor(temperature=20.0, humidity=40.0)
    sensor.queue((31.0, 45.0), None)

    assert sensor.sample()["temperature"] == 31.0
    with pytest.raises(SensorReadError):
        sensor.sample()
    assert sensor.sample_count == 2
