import numpy as np
import pytest

from edge_offload.EnvConfig import DeviceConfig, EdgeConfig, EnvConfig
from edge_offload.models import CloudResource, Device, EdgeServer, ExecutionLocation, Task
from edge_offload.network import NetworkModel
from edge_offload.rl_env import OffloadEnv


@pytest.fixture
def rng():
    return np.random.default_rng(0)


@pytest.fixture
def device():
    # Fast enough that a 100 MI task runs locally in 0.1 s
    return Device(0, DeviceConfig(mips=1000.0), x_m=100.0, y_m=100.0)


@pytest.fixture
def servers():
    near = EdgeServer(0, EdgeConfig(), x_m=150.0, y_m=100.0)  # 50 m from the device
    far = EdgeServer(1, EdgeConfig(), x_m=900.0, y_m=900.0)  # out of coverage
    return [near, far]


@pytest.fixture
def cloud():
    return CloudResource()


@pytest.fixture
def network():
    return NetworkModel()


@pytest.fixture
def env(device, servers, cloud, network):
    return OffloadEnv([device], servers, cloud, network)


@pytest.fixture
def make_task():
    def _make(task_id=0, length_mi=100.0, input_kb=100.0, output_kb=10.0, deadline_s=1.0, device_id=0, arrival_time=0.0):
        return Task(
            id=task_id,
            length_mi=length_mi,
            input_kb=input_kb,
            output_kb=output_kb,
            deadline_s=deadline_s,
            device_id=device_id,
            arrival_time=arrival_time,
        )

    return _make


@pytest.fixture
def executed_task(make_task):
    """Builds a task that already ran at ``location`` for ``latency`` seconds."""

    def _make(latency, location=None, deadline_s=1.0, energy_j=0.1, reward=1.0, task_id=0):
        task = make_task(task_id=task_id, deadline_s=deadline_s)
        task.location = location or ExecutionLocation.local()
        task.start_time = 0.0
        task.finish_time = latency
        task.energy_j = energy_j
        task.reward = reward
        task.completed = True
        return task

    return _make


@pytest.fixture
def small_config():
    return EnvConfig.from_dict(
        {
            "device": {"count": 3},
            "simulation": {
                "horizon_s": 5.0,
                "max_tasks_per_episode": 50,
                "training_episodes": 2,
                "comparison_runs": 2,
            },
            "agent": {
                "batch_size": 8,
                "train_frequency": 2,
                "replay_capacity": 100,
                "hidden_sizes": [16],
            },
        }
    )
