import asyncio

import pytest

from gardenrig.control_loops.moisture_sampler import MoistureSampler
from gardenrig.domain.exceptions import SensorReadError
from gardenrig.hardware.gpio.pin import HIGH, LOW, MemoryPin


class ExplodingPin(MemoryPin):
    def read(self) -> int:
        raise RuntimeError("bus fault")


def _sensors(levels):
    return [MemoryPin(pin, f"moisture_sensor[{i}]", level=level) for i, (pin, level) in enumerate(zip(range(100, 200), levels))]


def test_sample_reads_in_order_and_powers_down():
    power = MemoryPin(14, "moisture_power")
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)
        assert power.level == HIGH

    sampler = MoistureSampler(settle=0.1, inter_read_delay=0.05, sleep=fake_sleep)
    snapshot = asyncio.run(sampler.sample(_sensors([HIGH, LOW, HIGH, LOW, LOW, HIGH]), power))

    assert snapshot.to_list() == [True, False, True, False, False, True]
    assert power.writes == [HIGH, LOW]
    assert sleeps == [0.1] + [0.05] * 5


def test_unreadable_probe_counts_as_dry():
    power = MemoryPin(14, "moisture_power")
    sensors = _sensors([LOW, LOW, LOW])
    sensors[1].fail_reads = True
    sampler = MoistureSampler(settle=0, inter_read_delay=0)

    snapshot = asyncio.run(sampler.sample(sensors, power))

    assert snapshot.to_list() == [False, True, False]
    assert sampler.failed_reads == 1
    assert power.level == LOW


def test_power_is_cut_when_sampling_aborts():
    power = MemoryPin(14, "moisture_power")
    sensors = _sensors([LOW]) + [ExplodingPin(150, "moisture_sensor[1]")]
    sampler = MoistureSampler(settle=0, inter_read_delay=0)

    with pytest.raises(RuntimeError):
        asyncio.run(sampler.sample(sensors, power))

    assert power.writes == [HIGH, LOW]


def test_power_line_failure_raises_sensor_read_error():
    power = MemoryPin(14, "moisture_power")
    power.fail_writes = True
    sampler = MoistureSampler(settle=0, inter_read_delay=0)

    with pytest.raises(SensorReadError):
        asyncio.run(sampler.sample(_sensors([LOW]), power))
