"""
policy.py

Offloading policies. Every policy maps (task, device, edge servers, cloud)
to an action index using the layout of `rl_env.OffloadEnv`:
0 = local, 1..N = edge server, N + 1 = cloud.
"""

import enum
from abc import ABC, abstractmethod
from typing import Sequence

import numpy as np

from .dqn_agent import DQNAgent
from .models import CloudResource, Device, EdgeServer, Task
from .network import NetworkModel
from .rl_env import OffloadEnv


class Policy(ABC):
    name = "POLICY"

    @abstractmethod
    def decide(self, task: Task, device: Device, edge_servers: Sequence[EdgeServer], cloud: CloudResource) -> int: ...


class LocalOnly(Policy):
    name = "LOCAL_ONLY"

    def decide(self, task, device, edge_servers, cloud) -> int:
        return 0


class EdgeOnly(Policy):
    """Nearest edge server covering the device; local when none does."""

    name = "EDGE_ONLY"

    def decide(self, task, device, edge_servers, cloud) -> int:
        server = NetworkModel.nearest_edge_server(device, edge_servers)
        if server is None:
            return 0
        return list(edge_servers).index(server) + 1


class CloudOnly(Policy):
    name = "CLOUD_ONLY"

    def decide(self, task, device, edge_servers, cloud) -> int:
        return len(edge_servers) + 1


class RandomPolicy(Policy):
    """Uniform over every action, from its own seeded generator."""

    name = "RANDOM"

    def __init__(self, seed: int = 42):
        self.rng = np.random.default_rng(seed)

    def decide(self, task, device, edge_servers, cloud) -> int:
        return int(self.rng.integers(len(edge_servers) + 2))


class GreedyByLatency(Policy):
    """
    Picks the option with the lowest predicted latency among local
    execution, every edge server covering the device, and the cloud
    relayed through the first edge server.
    """

    name = "GREEDY_LATENCY"

    def __init__(self, network: NetworkModel):
        self.network = network

    def decide(self, task, device, edge_servers, cloud) -> int:
        if not edge_servers:
            return 0
        options = [(device.local_execution_time(task), 0)]
        for index, server in enumerate(edge_servers, start=1):
            if server.in_coverage(device):
                options.append((self.network.edge_latency(task, device, server), index))
        cloud_time = self.network.cloud_latency(task, device, edge_servers[0], cloud)
        options.append((cloud_time, len(edge_servers) + 1))
        return min(options, key=lambda option: option[0])[1]


class GreedyByEnergy(Policy):
    """
    Picks the option with the lowest device energy. Local execution costs
    the full computation; offloading costs only the radio transmit and
    receive energy. The cloud is reachable only when the first edge server
    covers the device.
    """

    name = "GREEDY_ENERGY"

    def decide(self, task, device, edge_servers, cloud) -> int:
        if not edge_servers:
            return 0

        def radio_energy(server: EdgeServer) -> float:
            return (
                device.transmission_energy(task.input_kb, server.distance_to(device))
                + device.reception_energy(task.output_kb)
            )

        options = [(device.local_energy(task), 0)]
        for index, server in enumerate(edge_servers, start=1):
            if server.in_coverage(device):
                options.append((radio_energy(server), index))
        relay = edge_servers[0]
        if relay.in_coverage(device):
            options.append((radio_energy(relay), len(edge_servers) + 1))
        return min(options, key=lambda option: option[0])[1]


class AgentPolicy(Policy):
    """Greedy decisions from a trained `DQNAgent`."""

    name = "DRL"

    def __init__(self, agent: DQNAgent, env: OffloadEnv):
        self.agent = agent
        self.env = env

    def decide(self, task, device, edge_servers, cloud) -> int:
        return self.agent.select_action(self.env.get_state(device, task), greedy=True)


class BaselineStrategy(enum.Enum):
    LOCAL_ONLY = "local_only"
    EDGE_ONLY = "edge_only"
    CLOUD_ONLY = "cloud_only"
    RANDOM = "random"
    GREEDY_LATENCY = "greedy_latency"
    GREEDY_ENERGY = "greedy_energy"


def make_baseline(strategy: BaselineStrategy, network: NetworkModel, seed: int = 42) -> Policy:
    if strategy is BaselineStrategy.LOCAL_ONLY:
        return LocalOnly()
    if strategy is BaselineStrategy.EDGE_ONLY:
        return EdgeOnly()
    if strategy is BaselineStrategy.CLOUD_ONLY:
        return CloudOnly()
    if strategy is BaselineStrategy.RANDOM:
        return RandomPolicy(seed)
    if strategy is BaselineStrategy.GREEDY_LATENCY:
        return GreedyByLatency(network)
    if strategy is BaselineStrategy.GREEDY_ENERGY:
        return GreedyByEnergy()
    raise ValueError(f"Unknown baseline strategy: {strategy}")
