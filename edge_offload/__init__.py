"""
edge_offload
============

Offloading decision engine for mobile/IoT tasks and its simulation loop:

- `EnvConfig` – immutable configuration sections
- `Task`, `Device`, `EdgeServer`, `CloudResource` – system models
- `MobilityModel`, `NetworkModel`, `TaskGenerator` – stochastic and analytical models
- `OffloadEnv` – state encoding, action execution and reward
- `DQNAgent` – epsilon-greedy value-based agent with experience replay
- Baseline policies from `policy`
- `Simulator` – training, evaluation and strategy comparison
- `MetricsAggregate` – per-task outcome statistics
- Scenario helpers from `scenario_config`
"""

from .EnvConfig import (  # noqa: F401
    ArrivalPattern,
    ConfigurationError,
    EnvConfig,
    MobilityPattern,
)
from .models import (  # noqa: F401
    Task,
    TaskPriority,
    Device,
    EdgeServer,
    CloudResource,
    ExecutionLocation,
    LocationKind,
)
from .mobility import MobilityModel  # noqa: F401
from .network import NetworkModel  # noqa: F401
from .workload import TaskGenerator  # noqa: F401
from .rl_env import OffloadEnv  # noqa: F401
from .dqn_agent import DQNAgent, ReplayBuffer, Experience, ModelLoadError  # noqa: F401
from .policy import BaselineStrategy, Policy, make_baseline  # noqa: F401
from .metrics import MetricsAggregate  # noqa: F401
from .sim import Simulator, TrainingHistory, comparison_frame  # noqa: F401
from .scenario_config import (  # noqa: F401
    ScenarioConfig,
    ALL_SCENARIOS,
    get_scenario,
    list_scenarios,
)
