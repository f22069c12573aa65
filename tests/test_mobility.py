import math

import numpy as np
import pytest

from edge_offload.EnvConfig import ConfigurationError, DeviceConfig, MobilityConfig, MobilityPattern
from edge_offload.mobility import MobilityModel
from edge_offload.models import Device


def make_devices(n):
    return [Device(i, DeviceConfig()) for i in range(n)]


def make_model(pattern, rng, **overrides):
    params = dict(pattern=pattern, area_width_m=100.0, area_height_m=100.0)
    params.update(overrides)
    return MobilityModel(MobilityConfig(**params), rng)


def test_initialize_places_devices_in_area(rng):
    model = make_model(MobilityPattern.RANDOM_WALK, rng)
    devices = make_devices(20)
    model.initialize(devices)
    for d in devices:
        assert 0 <= d.x_m <= 100 and 0 <= d.y_m <= 100
        assert 0.5 <= d.speed_mps <= 2.0
        assert 0 <= d.heading < 2 * math.pi


def test_random_walk_stays_inside_area(rng):
    model = make_model(MobilityPattern.RANDOM_WALK, rng, min_speed_mps=20.0, max_speed_mps=90.0)
    devices = make_devices(10)
    model.initialize(devices)
    for _ in range(500):
        model.update(devices)
        for d in devices:
            assert 0.0 <= d.x_m <= 100.0
            assert 0.0 <= d.y_m <= 100.0


def test_random_walk_reflects_on_x_boundary(rng):
    model = make_model(MobilityPattern.RANDOM_WALK, rng)
    device = make_devices(1)[0]
    device.x_m, device.y_m, device.heading, device.speed_mps = 99.0, 50.0, 0.0, 5.0
    model.update([device], 1.0)
    assert device.x_m == pytest.approx(96.0)
    assert device.y_m == pytest.approx(50.0)
    assert device.heading == pytest.approx(math.pi)


def test_random_walk_reflects_on_y_boundary(rng):
    model = make_model(MobilityPattern.RANDOM_WALK, rng)
    device = make_devices(1)[0]
    device.x_m, device.y_m, device.heading, device.speed_mps = 50.0, 1.0, 1.5 * math.pi, 5.0
    model.update([device], 1.0)
    assert device.y_m == pytest.approx(4.0)
    assert device.x_m == pytest.approx(50.0)
    assert device.heading == pytest.approx(0.5 * math.pi)


def test_static_devices_do_not_move(rng):
    model = make_model(MobilityPattern.STATIC, rng)
    devices = make_devices(5)
    model.initialize(devices)
    before = [(d.x_m, d.y_m) for d in devices]
    for _ in range(10):
        model.update(devices)
    assert [(d.x_m, d.y_m) for d in devices] == before


def test_waypoint_moves_toward_target(rng):
    model = make_model(MobilityPattern.RANDOM_WAYPOINT, rng)
    device = make_devices(1)[0]
    device.x_m, device.y_m, device.target, device.speed_mps = 0.0, 0.0, (100.0, 0.0), 2.0
    model.update([device], 1.0)
    assert (device.x_m, device.y_m) == pytest.approx((2.0, 0.0))
    assert device.target == (100.0, 0.0)


def test_waypoint_arrival_picks_new_target(rng):
    model = make_model(MobilityPattern.RANDOM_WAYPOINT, rng)
    device = make_devices(1)[0]
    device.x_m, device.y_m, device.target, device.speed_mps = 10.0, 10.5, (10.0, 10.0), 1.0
    model.update([device], 1.0)
    assert (device.x_m, device.y_m) == (10.0, 10.0)
    assert device.target != (10.0, 10.0)
    tx, ty = device.target
    assert 0 <= tx <= 100 and 0 <= ty <= 100
    # Either paused (a tenth of a fresh speed) or moving at a fresh speed
    assert 0.05 <= device.speed_mps <= 2.0


def test_group_members_stay_together(rng):
    model = make_model(
        MobilityPattern.GROUP_MOBILITY, rng, area_width_m=1000.0, area_height_m=1000.0, group_size=3, group_radius_m=20.0
    )
    devices = make_devices(7)
    model.initialize(devices)
    assert [d.group_id for d in devices] == [0, 0, 0, 1, 1, 1, 2]

    for _ in range(200):
        model.update(devices)
        for a in devices:
            assert 0 <= a.x_m <= 1000 and 0 <= a.y_m <= 1000
            for b in devices:
                if a.group_id == b.group_id:
                    assert math.hypot(a.x_m - b.x_m, a.y_m - b.y_m) <= 40.0 + 1e-9


def test_group_reference_moves(rng):
    model = make_model(MobilityPattern.GROUP_MOBILITY, rng, area_width_m=1000.0, area_height_m=1000.0)
    devices = make_devices(3)
    model.initialize(devices)
    start = np.mean([(d.x_m, d.y_m) for d in devices], axis=0)
    for _ in range(50):
        model.update(devices)
    end = np.mean([(d.x_m, d.y_m) for d in devices], axis=0)
    assert not np.allclose(start, end)


def test_invalid_speed_range(rng):
    with pytest.raises(ConfigurationError):
        make_model(MobilityPattern.RANDOM_WALK, rng, min_speed_mps=3.0, max_speed_mps=1.0)
