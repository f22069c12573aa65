import pytest

from edge_offload.EnvConfig import CloudConfig, ConfigurationError, DeviceConfig, EdgeConfig, EnvConfig
from edge_offload.models import (
    CloudResource,
    Device,
    EdgeServer,
    ExecutionLocation,
    LocationKind,
    build_entities,
    grid_positions,
)


def test_local_execution_cost(device, make_task):
    task = make_task(length_mi=100.0)
    assert device.local_execution_time(task) == pytest.approx(0.1)
    assert device.local_energy(task) == pytest.approx(0.05)


def test_offload_energy_uses_given_bandwidth(device, make_task):
    task = make_task(input_kb=100.0, output_kb=10.0)
    # tx: 1.0 W * 800 kb / 100000 kbps, rx: 0.5 W * 80 kb / 100000 kbps
    assert device.offload_energy(task, 100.0) == pytest.approx(0.008 + 0.0004)
    assert device.offload_energy(task, 200.0) == pytest.approx((0.008 + 0.0004) / 2)


def test_remaining_energy_fraction_is_clamped(device):
    assert device.remaining_energy_fraction == 1.0
    device.total_energy_j = 50.0
    assert device.remaining_energy_fraction == pytest.approx(0.5)
    device.total_energy_j = 150.0
    assert device.remaining_energy_fraction == 0.0


def test_record_task_updates_counters(device, executed_task):
    device.record_task(executed_task(0.1, ExecutionLocation.local(), energy_j=0.2))
    device.record_task(executed_task(0.2, ExecutionLocation.edge(1), energy_j=0.3))
    device.record_task(executed_task(0.3, ExecutionLocation.cloud(), energy_j=0.5))
    assert (device.executed_locally, device.offloaded_to_edge, device.offloaded_to_cloud) == (1, 1, 1)
    assert device.total_energy_j == pytest.approx(1.0)
    assert len(device.completed_tasks) == 3

    device.reset_stats()
    assert device.completed_tasks == []
    assert device.total_energy_j == 0.0


def test_location_tags():
    assert ExecutionLocation.local().tag == "LOCAL"
    assert ExecutionLocation.edge(2).tag == "EDGE[2]"
    assert ExecutionLocation.cloud().tag == "CLOUD"
    with pytest.raises(ValueError):
        ExecutionLocation(LocationKind.EDGE)
    with pytest.raises(ValueError):
        ExecutionLocation(LocationKind.CLOUD, 0)


def test_task_requires_positive_deadline(make_task):
    with pytest.raises(ConfigurationError):
        make_task(deadline_s=0.0)


@pytest.mark.parametrize(
    "factory",
    [
        lambda: Device(0, DeviceConfig(mips=0.0)),
        lambda: Device(0, DeviceConfig(bandwidth_mbps=-1.0)),
        lambda: EdgeServer(0, EdgeConfig(num_pes=0)),
        lambda: EdgeServer(0, EdgeConfig(mips=-5.0)),
        lambda: EdgeServer(0, EdgeConfig(bandwidth_mbps=0.0)),
        lambda: CloudResource(0, CloudConfig(mips_per_pe=0.0)),
        lambda: CloudResource(0, CloudConfig(bandwidth_per_host_mbps=0.0)),
    ],
)
def test_non_positive_capacity_fails_fast(factory):
    with pytest.raises(ConfigurationError):
        factory()


def test_edge_processing_time_and_load(make_task):
    server = EdgeServer(0, EdgeConfig())
    task = make_task(length_mi=1600.0)
    assert server.processing_time(task) == pytest.approx(0.1)

    server.assign(task)
    assert server.tasks_received == 1
    assert server.load == pytest.approx(0.1)
    # Slower once loaded
    assert server.processing_time(task) == pytest.approx(1600.0 / (16000.0 * 0.9))

    server.advance(0.05)
    assert server.load == pytest.approx(0.05)
    server.advance(1.0)
    assert server.load == 0.0


def test_edge_load_is_capped(make_task):
    server = EdgeServer(0, EdgeConfig())
    server.assign(make_task(length_mi=64000.0))
    assert server.load == 1.0
    task = make_task(length_mi=160.0)
    assert server.processing_time(task) == pytest.approx(160.0 / (16000.0 * 0.05))


def test_record_outcome_counts_completed_and_failed():
    server = EdgeServer(0, EdgeConfig())
    server.record_outcome(True)
    server.record_outcome(False)
    server.record_outcome(True)
    assert (server.tasks_completed, server.tasks_failed) == (2, 1)


def test_edge_energy_accumulates(make_task):
    server = EdgeServer(0, EdgeConfig())
    task = make_task(length_mi=1600.0)
    expected = server.processing_energy(task)
    server.assign(task)
    assert expected > 0
    assert server.total_energy_j == pytest.approx(expected)
    server.reset_stats()
    assert server.total_energy_j == 0.0
    assert server.load == 0.0


def test_coverage(device):
    inside = EdgeServer(0, EdgeConfig(coverage_radius_m=200.0), x_m=300.0, y_m=100.0)
    outside = EdgeServer(1, EdgeConfig(coverage_radius_m=200.0), x_m=301.0, y_m=100.0)
    assert inside.in_coverage(device)
    assert not outside.in_coverage(device)


def test_cloud_capacity(make_task):
    cloud = CloudResource()
    assert cloud.total_mips == 4 * 8 * 5000
    assert cloud.bandwidth_mbps == 4000
    assert cloud.processing_time(make_task(length_mi=1600.0)) == pytest.approx(0.01)


def test_build_entities_uses_grid_or_configured_positions():
    devices, servers, cloud = build_entities(EnvConfig())
    assert len(devices) == 5
    assert [(s.x_m, s.y_m) for s in servers] == [(250.0, 500.0), (750.0, 500.0)]
    assert isinstance(cloud, CloudResource)

    cfg = EnvConfig.from_dict({"edge": {"count": 3, "positions": [[10, 20]]}})
    _, servers, _ = build_entities(cfg)
    assert (servers[0].x_m, servers[0].y_m) == (10.0, 20.0)
    assert len(servers) == 3


def test_grid_positions_cover_area():
    positions = grid_positions(4, 1000.0, 1000.0)
    assert positions == [(250.0, 250.0), (750.0, 250.0), (250.0, 750.0), (750.0, 750.0)]
    assert grid_positions(0, 1000.0, 1000.0) == []
