import numpy as np
import pytest

from edge_offload.EnvConfig import ArrivalPattern, ConfigurationError, DeviceConfig, WorkloadConfig
from edge_offload.models import Device, TaskPriority
from edge_offload.workload import TaskGenerator, diurnal_multiplier


def make_generator(rng, **overrides):
    return TaskGenerator(WorkloadConfig(**overrides), rng)


def test_generated_tasks_respect_ranges(rng):
    gen = make_generator(rng)
    device = Device(3, DeviceConfig())
    tasks = [gen.generate(device, arrival_time=float(i)) for i in range(200)]

    assert [t.id for t in tasks] == list(range(200))
    assert device.tasks_generated == 200
    for t in tasks:
        assert 10.0 <= t.length_mi <= 500.0
        assert 10.0 <= t.input_kb <= 1000.0
        assert 1.0 <= t.output_kb <= 100.0
        assert 2.0 <= t.deadline_s <= 20.0
        assert t.device_id == 3
        assert not t.completed

    gen.reset()
    assert gen.generate(device, 0.0).id == 0


def test_priority_probabilities(rng):
    gen = make_generator(rng, priority_high_prob=1.0, priority_medium_prob=0.0)
    device = Device(0, DeviceConfig())
    assert {gen.generate(device, 0.0).priority for _ in range(50)} == {TaskPriority.HIGH}


def test_uniform_interarrival_is_constant(rng):
    gen = make_generator(rng, arrival_pattern=ArrivalPattern.UNIFORM, arrival_rate=4.0)
    assert {gen.next_interarrival() for _ in range(10)} == {0.25}


def test_poisson_mean_interarrival(rng):
    gen = make_generator(rng, arrival_pattern=ArrivalPattern.POISSON, arrival_rate=5.0)
    draws = np.array([gen.next_interarrival() for _ in range(20000)])
    assert (draws > 0).all()
    assert draws.mean() == pytest.approx(0.2, rel=0.05)


def test_bursty_arrivals_are_denser_than_poisson(rng):
    gen = make_generator(rng, arrival_pattern=ArrivalPattern.BURSTY, arrival_rate=5.0)
    draws = np.array([gen.next_interarrival() for _ in range(20000)])
    # 80% at rate 5, 20% at rate 25
    assert draws.mean() == pytest.approx(0.8 / 5.0 + 0.2 / 25.0, rel=0.05)


def test_diurnal_multiplier_profile():
    assert diurnal_multiplier(3.0) == 0.2
    assert diurnal_multiplier(7.0) == pytest.approx(0.8)
    assert diurnal_multiplier(12.0) == 2.0
    assert diurnal_multiplier(18.0) == pytest.approx(1.64)
    assert diurnal_multiplier(23.0) == 0.2


def test_diurnal_arrivals_follow_time_of_day(rng):
    gen = make_generator(rng, arrival_pattern=ArrivalPattern.DIURNAL, arrival_rate=1.0)
    night = np.mean([gen.next_interarrival(now=2 * 3600.0) for _ in range(5000)])
    noon = np.mean([gen.next_interarrival(now=12 * 3600.0) for _ in range(5000)])
    assert night == pytest.approx(1 / 0.2, rel=0.1)
    assert noon == pytest.approx(1 / 2.0, rel=0.1)


def test_initial_batch_is_round_robin(rng):
    gen = make_generator(rng)
    devices = [Device(i, DeviceConfig()) for i in range(3)]
    batch = gen.initial_batch(devices, 7)
    assert [t.device_id for t in batch] == [0, 1, 2, 0, 1, 2, 0]
    arrivals = [t.arrival_time for t in batch]
    assert arrivals == sorted(arrivals)
    with pytest.raises(ValueError):
        gen.initial_batch([], 3)


def test_batches_are_reproducible():
    devices = [Device(i, DeviceConfig()) for i in range(2)]
    first = make_generator(np.random.default_rng(42)).initial_batch(devices, 20)
    second = make_generator(np.random.default_rng(42)).initial_batch(devices, 20)
    assert [(t.length_mi, t.arrival_time) for t in first] == [(t.length_mi, t.arrival_time) for t in second]


@pytest.mark.parametrize(
    "overrides",
    [
        {"arrival_rate": 0.0},
        {"arrival_rate": -1.0},
        {"min_deadline_s": 0.0},
        {"min_deadline_s": 5.0, "max_deadline_s": 1.0},
        {"min_length_mi": 0.0},
    ],
)
def test_invalid_workload_fails_fast(rng, overrides):
    with pytest.raises(ConfigurationError):
        make_generator(rng, **overrides)
