"""
rl_env.py

Offloading environment: encodes (task, device, edge servers, cloud) as a
fixed-size state vector and turns a chosen action into realized latency,
energy, entity statistics and a scalar reward.

Action layout for N edge servers:
    0           execute on the device
    1 .. N      offload to edge server ``action - 1``
    N + 1       offload to the cloud

State layout (3 + 2 + 3N + 1 features, each clamped to [0, 1]):
    task length, input size, output size,
    device compute rate, device remaining-energy proxy,
    per server: load, distance to the device, total capacity,
    cloud average utilization.
"""

import logging
from typing import Optional, Sequence

import numpy as np

from .EnvConfig import RewardConfig
from .models import CloudResource, Device, EdgeServer, ExecutionLocation, Task
from .network import NetworkModel

logger = logging.getLogger(__name__)

# (min, max) used to normalize each raw feature
LENGTH_BOUNDS_MI = (0.0, 10000.0)
INPUT_BOUNDS_KB = (0.0, 1000.0)
OUTPUT_BOUNDS_KB = (0.0, 200.0)
DEVICE_MIPS_BOUNDS = (0.0, 5000.0)
DISTANCE_BOUNDS_M = (0.0, 1000.0)
CAPACITY_BOUNDS_MIPS = (0.0, 50000.0)


def normalize(value: float, bounds) -> float:
    low, high = bounds
    return min(1.0, max(0.0, (value - low) / (high - low)))


class OffloadEnv:
    def __init__(
        self,
        devices: Sequence[Device],
        edge_servers: Sequence[EdgeServer],
        cloud: CloudResource,
        network: NetworkModel,
        reward_cfg: Optional[RewardConfig] = None,
    ):
        self.devices = list(devices)
        self.edge_servers = list(edge_servers)
        self.cloud = cloud
        self.network = network
        self.reward_cfg = reward_cfg or RewardConfig()

    @property
    def n_edge(self) -> int:
        return len(self.edge_servers)

    @property
    def n_actions(self) -> int:
        return self.n_edge + 2

    @property
    def state_dim(self) -> int:
        return 3 + 2 + 3 * self.n_edge + 1

    @property
    def cloud_action(self) -> int:
        return self.n_edge + 1

    def reset(self) -> None:
        """Clears the running statistics of every entity."""
        for device in self.devices:
            device.reset_stats()
        for server in self.edge_servers:
            server.reset_stats()
        self.cloud.reset_stats()

    # ----------------------------------------------------------
    def get_state(self, device: Device, task: Task) -> np.ndarray:
        features = [
            normalize(task.length_mi, LENGTH_BOUNDS_MI),
            normalize(task.input_kb, INPUT_BOUNDS_KB),
            normalize(task.output_kb, OUTPUT_BOUNDS_KB),
            normalize(device.mips, DEVICE_MIPS_BOUNDS),
            device.remaining_energy_fraction,
        ]
        for server in self.edge_servers:
            features.append(server.load)
            features.append(normalize(server.distance_to(device), DISTANCE_BOUNDS_M))
            features.append(normalize(server.capacity_mips, CAPACITY_BOUNDS_MIPS))
        features.append(normalize(self.cloud.average_utilization, (0.0, 1.0)))
        return np.asarray(features, dtype=np.float32)

    def execute_action(self, device: Device, task: Task, action: int, now: Optional[float] = None) -> float:
        """
        Runs ``task`` where ``action`` says and returns the reward.

        Offloading to an edge server that does not cover the device is an
        invalid action, not an error: the task is charged twice its deadline
        with no energy, servers are left untouched and the reward is the
        invalid-action penalty.

        Args:
            now: simulated start time; defaults to the task's arrival time.

        Returns:
            The reward, also stored on ``task.reward``.
        """
        if not 0 <= action <= self.cloud_action:
            raise ValueError(f"Action {action} outside [0, {self.cloud_action}]")

        start = task.arrival_time if now is None else now
        valid = True
        load_balance = 0.0

        if action == 0:
            location = ExecutionLocation.local()
            exec_time = device.local_execution_time(task)
            energy = device.local_energy(task)
        elif action <= self.n_edge:
            server = self.edge_servers[action - 1]
            location = ExecutionLocation.edge(action - 1)
            if not server.in_coverage(device):
                valid = False
                exec_time = 2 * task.deadline_s
                energy = 0.0
            else:
                exec_time = self.network.edge_latency(task, device, server)
                energy = device.offload_energy(task, server.bandwidth_mbps)
                server.assign(task)
                server.record_outcome(exec_time <= task.deadline_s)
                load_balance = self.network.load_balance_factor(self.edge_servers)
        else:
            location = ExecutionLocation.cloud()
            relay = self.network.nearest_edge_server(device, self.edge_servers)
            exec_time = self.network.cloud_latency(task, device, relay, self.cloud)
            energy = device.offload_energy(task, device.bandwidth_mbps)
            self.cloud.assign(task)
            self.cloud.record_outcome(exec_time <= task.deadline_s)

        reward = self.reward(task, exec_time, energy, load_balance) if valid else -self.reward_cfg.invalid_penalty

        task.location = location
        task.start_time = start
        task.finish_time = start + exec_time
        task.energy_j = energy
        task.reward = reward
        device.record_task(task)

        logger.debug(
            "task=%d device=%d -> %s time=%.4fs energy=%.4fJ reward=%.3f%s",
            task.id, device.id, location.tag, exec_time, energy, reward, "" if valid else " (invalid)",
        )
        return reward

    def reward(self, task: Task, exec_time: float, energy: float, load_balance: float = 0.0) -> float:
        """
        Scores a valid decision.

        Meeting the deadline earns a fixed bonus plus shares for low latency,
        low energy and balanced edge load; missing it costs a base penalty
        that grows with the deadline-miss ratio. ``load_balance`` is only
        non-zero for edge placements.
        """
        r = self.reward_cfg
        deadline = task.deadline_s
        if exec_time <= deadline:
            return (
                r.deadline_bonus
                + (1.0 - min(1.0, exec_time / deadline)) * r.latency_weight
                + (1.0 - min(1.0, energy / r.energy_cap_j)) * r.energy_weight
                + (1.0 - load_balance) * r.load_balance_weight
            )
        miss_ratio = (exec_time - deadline) / deadline
        return -r.miss_penalty - miss_ratio * r.miss_ratio_weight
