"""
models.py

System entities for the offloading simulation: tasks, mobile devices,
edge servers and the cloud datacenter.

Entities expose closed-form cost functions (execution time, energy) and
keep running statistics. They make no decisions; `rl_env.OffloadEnv` and
the policies in `policy` do.
"""

import enum
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .EnvConfig import CloudConfig, ConfigurationError, DeviceConfig, EdgeConfig, EnvConfig

# Lower bound on the free share of an edge server, so a saturated server is
# slow rather than unreachable.
MIN_FREE_CAPACITY = 0.05


class LocationKind(enum.Enum):
    LOCAL = "local"
    EDGE = "edge"
    CLOUD = "cloud"


@dataclass(frozen=True)
class ExecutionLocation:
    """Where a task ran: LOCAL, EDGE[i] or CLOUD."""

    kind: LocationKind
    server_index: Optional[int] = None

    def __post_init__(self):
        if (self.kind is LocationKind.EDGE) != (self.server_index is not None):
            raise ValueError("server_index must be given for EDGE locations only")

    @classmethod
    def local(cls) -> "ExecutionLocation":
        return cls(LocationKind.LOCAL)

    @classmethod
    def edge(cls, server_index: int) -> "ExecutionLocation":
        return cls(LocationKind.EDGE, server_index)

    @classmethod
    def cloud(cls) -> "ExecutionLocation":
        return cls(LocationKind.CLOUD)

    @property
    def tag(self) -> str:
        if self.kind is LocationKind.EDGE:
            return f"EDGE[{self.server_index}]"
        return self.kind.name


class TaskPriority(enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass
class Task:
    """
    A unit of computation generated by a device.

    The deadline is relative: a task meets it when
    ``finish_time - start_time <= deadline_s``.
    """

    id: int
    length_mi: float
    input_kb: float
    output_kb: float
    deadline_s: float
    device_id: int
    arrival_time: float = 0.0
    priority: TaskPriority = TaskPriority.MEDIUM

    # Filled in by OffloadEnv.execute_action
    location: Optional[ExecutionLocation] = None
    start_time: float = 0.0
    finish_time: float = 0.0
    energy_j: float = 0.0
    reward: float = 0.0
    completed: bool = False

    def __post_init__(self):
        if self.deadline_s <= 0:
            raise ConfigurationError(f"Task {self.id}: deadline must be positive, got {self.deadline_s}")
        if self.length_mi <= 0:
            raise ConfigurationError(f"Task {self.id}: length must be positive, got {self.length_mi}")

    @property
    def execution_time(self) -> float:
        return self.finish_time - self.start_time

    @property
    def met_deadline(self) -> bool:
        return self.completed and self.execution_time <= self.deadline_s


class Device:
    """Mobile / IoT device that generates tasks and may run them itself."""

    def __init__(self, device_id: int, cfg: Optional[DeviceConfig] = None, x_m: float = 0.0, y_m: float = 0.0):
        cfg = cfg or DeviceConfig()
        if cfg.mips <= 0:
            raise ConfigurationError(f"Device {device_id}: compute rate must be positive, got {cfg.mips}")
        if cfg.bandwidth_mbps <= 0:
            raise ConfigurationError(f"Device {device_id}: bandwidth must be positive, got {cfg.bandwidth_mbps}")
        if cfg.energy_budget_j <= 0:
            raise ConfigurationError(f"Device {device_id}: energy budget must be positive, got {cfg.energy_budget_j}")

        self.id = device_id
        self.mips = cfg.mips
        self.ram_mb = cfg.ram_mb
        self.storage_mb = cfg.storage_mb
        self.bandwidth_mbps = cfg.bandwidth_mbps
        self.idle_power_w = cfg.idle_power_w
        self.computing_power_w = cfg.computing_power_w
        self.transmission_power_w = cfg.transmission_power_w
        self.reception_power_w = cfg.reception_power_w
        self.energy_budget_j = cfg.energy_budget_j

        # Mobility state, owned by MobilityModel
        self.x_m = x_m
        self.y_m = y_m
        self.speed_mps = 0.0
        self.heading = 0.0
        self.target: Optional[Tuple[float, float]] = None
        self.group_id: Optional[int] = None

        self.reset_stats()

    def reset_stats(self) -> None:
        self.tasks_generated = 0
        self.executed_locally = 0
        self.offloaded_to_edge = 0
        self.offloaded_to_cloud = 0
        self.total_energy_j = 0.0
        self.completed_tasks: List[Task] = []

    # ----------------------------------------------------------
    def distance_to(self, x_m: float, y_m: float) -> float:
        return math.hypot(self.x_m - x_m, self.y_m - y_m)

    @property
    def remaining_energy_fraction(self) -> float:
        return min(1.0, max(0.0, 1.0 - self.total_energy_j / self.energy_budget_j))

    def local_execution_time(self, task: Task) -> float:
        return task.length_mi / self.mips

    def local_energy(self, task: Task) -> float:
        return self.computing_power_w * self.local_execution_time(task)

    def offload_energy(self, task: Task, bandwidth_mbps: float) -> float:
        """Radio energy to send the input and receive the output at ``bandwidth_mbps``."""
        tx_time = task.input_kb * 8 / (bandwidth_mbps * 1000)
        rx_time = task.output_kb * 8 / (bandwidth_mbps * 1000)
        return self.transmission_power_w * tx_time + self.reception_power_w * rx_time

    def transmission_energy(self, size_kb: float, distance_m: float) -> float:
        return size_kb * 1e-6 * distance_m * self.transmission_power_w

    def reception_energy(self, size_kb: float) -> float:
        return size_kb * 5e-7 * self.reception_power_w

    def record_task(self, task: Task) -> None:
        """Marks ``task`` completed and books it against this device."""
        kind = task.location.kind
        if kind is LocationKind.LOCAL:
            self.executed_locally += 1
        elif kind is LocationKind.EDGE:
            self.offloaded_to_edge += 1
        else:
            self.offloaded_to_cloud += 1
        self.total_energy_j += task.energy_j
        task.completed = True
        self.completed_tasks.append(task)

    def __repr__(self):
        return f"Device(id={self.id}, pos=({self.x_m:.1f}, {self.y_m:.1f}), mips={self.mips})"


class _ComputeNode:
    """
    Shared load model for edge servers and the cloud.

    Accepted work is queued as outstanding MI that drains at full capacity
    as simulated time advances. Load is the outstanding work relative to
    what the node completes in ``load_window_s`` seconds, capped at 1.
    """

    def __init__(self, node_id: int, capacity_mips: float, load_window_s: float):
        if load_window_s <= 0:
            raise ConfigurationError(f"Node {node_id}: load window must be positive, got {load_window_s}")
        self.id = node_id
        self.capacity_mips = capacity_mips
        self.load_window_s = load_window_s
        self.reset_stats()

    def reset_stats(self) -> None:
        self.load = 0.0
        self.outstanding_mi = 0.0
        self.tasks_received = 0
        self.tasks_completed = 0
        self.tasks_failed = 0
        self.total_processing_time_s = 0.0
        self.average_utilization = 0.0

    def processing_time(self, task: Task) -> float:
        raise NotImplementedError

    def advance(self, dt_s: float) -> None:
        """Drains outstanding work for ``dt_s`` seconds of simulated time."""
        if dt_s <= 0:
            return
        self.outstanding_mi = max(0.0, self.outstanding_mi - self.capacity_mips * dt_s)
        self._refresh_load()

    def assign(self, task: Task) -> float:
        """Accepts ``task`` and returns its processing time at the current load."""
        proc_time = self.processing_time(task)
        self.tasks_received += 1
        self.total_processing_time_s += proc_time
        self.outstanding_mi += task.length_mi
        self._refresh_load()
        self.average_utilization += (self.load - self.average_utilization) / self.tasks_received
        return proc_time

    def record_outcome(self, met_deadline: bool) -> None:
        """Counts an accepted task as completed on time or failed."""
        if met_deadline:
            self.tasks_completed += 1
        else:
            self.tasks_failed += 1

    def _refresh_load(self) -> None:
        self.load = min(1.0, self.outstanding_mi / (self.capacity_mips * self.load_window_s))


class EdgeServer(_ComputeNode):
    """Coverage-limited edge server with ``num_pes`` processing elements."""

    def __init__(self, server_id: int, cfg: Optional[EdgeConfig] = None, x_m: float = 0.0, y_m: float = 0.0):
        cfg = cfg or EdgeConfig()
        if cfg.mips <= 0 or cfg.num_pes <= 0:
            raise ConfigurationError(
                f"EdgeServer {server_id}: compute rate and PE count must be positive, "
                f"got mips={cfg.mips}, pes={cfg.num_pes}"
            )
        if cfg.bandwidth_mbps <= 0:
            raise ConfigurationError(f"EdgeServer {server_id}: bandwidth must be positive, got {cfg.bandwidth_mbps}")
        if cfg.coverage_radius_m <= 0:
            raise ConfigurationError(
                f"EdgeServer {server_id}: coverage radius must be positive, got {cfg.coverage_radius_m}"
            )

        self.mips = cfg.mips
        self.num_pes = cfg.num_pes
        self.ram_mb = cfg.ram_mb
        self.storage_mb = cfg.storage_mb
        self.bandwidth_mbps = cfg.bandwidth_mbps
        self.idle_power_w = cfg.idle_power_w
        self.computing_power_w = cfg.computing_power_w
        self.coverage_radius_m = cfg.coverage_radius_m
        self.x_m = x_m
        self.y_m = y_m
        super().__init__(server_id, cfg.mips * cfg.num_pes, cfg.load_window_s)

    def reset_stats(self) -> None:
        super().reset_stats()
        self.total_energy_j = 0.0

    def distance_to(self, device: Device) -> float:
        return device.distance_to(self.x_m, self.y_m)

    def in_coverage(self, device: Device) -> bool:
        return self.distance_to(device) <= self.coverage_radius_m

    def processing_time(self, task: Task) -> float:
        free = max(1.0 - self.load, MIN_FREE_CAPACITY)
        return task.length_mi / (self.capacity_mips * free)

    def processing_energy(self, task: Task) -> float:
        share = min(1.0, task.length_mi / self.capacity_mips)
        utilization = min(1.0, self.load + share / 2)
        power = self.idle_power_w + (self.computing_power_w - self.idle_power_w) * utilization
        return power * self.processing_time(task)

    def assign(self, task: Task) -> float:
        self.total_energy_j += self.processing_energy(task)
        return super().assign(task)

    def __repr__(self):
        return (
            f"EdgeServer(id={self.id}, pos=({self.x_m:.1f}, {self.y_m:.1f}), "
            f"radius={self.coverage_radius_m}, load={self.load:.2f})"
        )


class CloudResource(_ComputeNode):
    """Remote datacenter: effectively unbounded reach, aggregate compute rate."""

    def __init__(self, cloud_id: int = 0, cfg: Optional[CloudConfig] = None):
        cfg = cfg or CloudConfig()
        if cfg.num_hosts <= 0 or cfg.pes_per_host <= 0 or cfg.mips_per_pe <= 0:
            raise ConfigurationError(
                f"Cloud {cloud_id}: hosts, PEs and compute rate must be positive, "
                f"got hosts={cfg.num_hosts}, pes={cfg.pes_per_host}, mips={cfg.mips_per_pe}"
            )
        if cfg.bandwidth_per_host_mbps <= 0:
            raise ConfigurationError(
                f"Cloud {cloud_id}: bandwidth must be positive, got {cfg.bandwidth_per_host_mbps}"
            )
        self.num_hosts = cfg.num_hosts
        self.pes_per_host = cfg.pes_per_host
        self.ram_mb = cfg.ram_mb
        self.storage_mb = cfg.storage_mb
        self.total_mips = cfg.num_hosts * cfg.pes_per_host * cfg.mips_per_pe
        self.bandwidth_mbps = cfg.bandwidth_per_host_mbps * cfg.num_hosts
        super().__init__(cloud_id, self.total_mips, cfg.load_window_s)

    def processing_time(self, task: Task) -> float:
        return task.length_mi / self.total_mips

    def __repr__(self):
        return f"CloudResource(id={self.id}, mips={self.total_mips:.0f}, util={self.average_utilization:.3f})"


def grid_positions(count: int, width_m: float, height_m: float) -> List[Tuple[float, float]]:
    """Centres of a near-square grid of ``count`` cells over the area."""
    if count <= 0:
        return []
    cols = math.ceil(math.sqrt(count))
    rows = math.ceil(count / cols)
    return [
        ((i % cols + 0.5) * width_m / cols, (i // cols + 0.5) * height_m / rows)
        for i in range(count)
    ]


def build_entities(config: EnvConfig) -> Tuple[List[Device], List[EdgeServer], CloudResource]:
    """Creates the devices, edge servers and cloud described by ``config``.

    Device positions are left at the origin; `MobilityModel.initialize`
    places them.
    """
    devices = [Device(i, config.device) for i in range(config.device.count)]

    grid = grid_positions(config.edge.count, config.mobility.area_width_m, config.mobility.area_height_m)
    servers = []
    for i in range(config.edge.count):
        x, y = config.edge.positions[i] if i < len(config.edge.positions) else grid[i]
        servers.append(EdgeServer(i, config.edge, x_m=x, y_m=y))

    cloud = CloudResource(0, config.cloud)
    return devices, servers, cloud
