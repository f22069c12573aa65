"""
EnvConfig.py

Immutable configuration for the offloading simulation.

Every component receives the section it needs when it is constructed;
nothing reads configuration from module globals. Defaults describe the
reference edge-computing setup: 5 mobile devices, 2 edge servers and a
4-host cloud datacenter.

Units used throughout the package:
    compute rate    MIPS (million instructions per second)
    task length     MI (million instructions)
    data sizes      KB
    bandwidth       Mbps
    link latency    ms
    power           W
    time            s
    distance        m
"""

import enum
import logging
import math
from dataclasses import dataclass, field, fields, replace
from typing import Any, Callable, Dict, Iterator, Mapping, Tuple

logger = logging.getLogger(__name__)


class ConfigurationError(ValueError):
    """An entity or generator was constructed with an invalid value."""


# ===== ENUMERATIONS =====

class ArrivalPattern(enum.Enum):
    UNIFORM = "uniform"
    POISSON = "poisson"
    BURSTY = "bursty"
    DIURNAL = "diurnal"


class MobilityPattern(enum.Enum):
    STATIC = "static"
    RANDOM_WALK = "random_walk"
    RANDOM_WAYPOINT = "random_waypoint"
    GROUP_MOBILITY = "group_mobility"


# ===== ENTITY CONFIG =====

@dataclass(frozen=True)
class DeviceConfig:
    count: int = 5
    mips: float = 500.0
    ram_mb: int = 1024
    storage_mb: int = 4096
    bandwidth_mbps: float = 100.0
    idle_power_w: float = 0.01
    computing_power_w: float = 0.5
    transmission_power_w: float = 1.0
    reception_power_w: float = 0.5
    # Cumulative energy at which the remaining-energy proxy reaches 0
    energy_budget_j: float = 100.0


@dataclass(frozen=True)
class EdgeConfig:
    count: int = 2
    mips: float = 4000.0
    num_pes: int = 4
    ram_mb: int = 8192
    storage_mb: int = 32768
    bandwidth_mbps: float = 100.0
    idle_power_w: float = 1.5
    computing_power_w: float = 4.0
    coverage_radius_m: float = 200.0
    # Seconds of full-capacity work that saturate a server (load == 1)
    load_window_s: float = 1.0
    # Explicit (x, y) per server; servers without one are placed on a grid
    positions: Tuple[Tuple[float, float], ...] = ()


@dataclass(frozen=True)
class CloudConfig:
    num_hosts: int = 4
    pes_per_host: int = 8
    mips_per_pe: float = 5000.0
    ram_mb: int = 32768
    storage_mb: int = 1048576
    bandwidth_per_host_mbps: float = 1000.0
    load_window_s: float = 1.0


@dataclass(frozen=True)
class NetworkConfig:
    mobile_to_edge_bandwidth_mbps: float = 100.0
    edge_to_cloud_bandwidth_mbps: float = 1000.0
    mobile_to_edge_latency_ms: float = 10.0
    edge_to_cloud_latency_ms: float = 50.0
    mobile_quality: float = 0.9
    backbone_quality: float = 0.95


# ===== WORKLOAD & MOBILITY =====

@dataclass(frozen=True)
class WorkloadConfig:
    min_length_mi: float = 10.0
    max_length_mi: float = 500.0
    min_input_kb: float = 10.0
    max_input_kb: float = 1000.0
    min_output_kb: float = 1.0
    max_output_kb: float = 100.0
    # Deadlines are relative to the arrival instant
    min_deadline_s: float = 2.0
    max_deadline_s: float = 20.0
    arrival_pattern: ArrivalPattern = ArrivalPattern.POISSON
    arrival_rate: float = 5.0  # tasks / s per device
    priority_high_prob: float = 0.2
    priority_medium_prob: float = 0.5


@dataclass(frozen=True)
class MobilityConfig:
    pattern: MobilityPattern = MobilityPattern.RANDOM_WALK
    area_width_m: float = 1000.0
    area_height_m: float = 1000.0
    min_speed_mps: float = 0.5
    max_speed_mps: float = 2.0
    update_interval_s: float = 1.0
    group_size: int = 3
    group_radius_m: float = 50.0


# ===== LEARNING & REWARD =====

@dataclass(frozen=True)
class AgentConfig:
    learning_rate: float = 0.001
    discount_factor: float = 0.95
    epsilon: float = 1.0
    epsilon_decay: float = 0.995
    epsilon_min: float = 0.01
    batch_size: int = 32
    replay_capacity: int = 1000
    target_update_frequency: int = 100
    # Decisions between two training calls
    train_frequency: int = 10
    hidden_sizes: Tuple[int, ...] = (64, 32)


@dataclass(frozen=True)
class RewardConfig:
    deadline_bonus: float = 10.0
    latency_weight: float = 5.0
    energy_weight: float = 3.0
    load_balance_weight: float = 2.0
    miss_penalty: float = 5.0
    miss_ratio_weight: float = 10.0
    invalid_penalty: float = 20.0
    energy_cap_j: float = 5.0


# ===== SIMULATION CONFIG =====

@dataclass(frozen=True)
class SimulationConfig:
    horizon_s: float = 100.0
    time_step_s: float = 0.1
    max_tasks_per_episode: int = 1000
    # Tasks arriving before this instant run but are not measured
    warm_up_s: float = 0.0
    seed: int = 42
    training_episodes: int = 1000
    evaluation_runs: int = 1
    comparison_runs: int = 3
    reset_positions: bool = True


@dataclass(frozen=True)
class EnvConfig:
    device: DeviceConfig = field(default_factory=DeviceConfig)
    edge: EdgeConfig = field(default_factory=EdgeConfig)
    cloud: CloudConfig = field(default_factory=CloudConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    workload: WorkloadConfig = field(default_factory=WorkloadConfig)
    mobility: MobilityConfig = field(default_factory=MobilityConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    reward: RewardConfig = field(default_factory=RewardConfig)
    simulation: SimulationConfig = field(default_factory=SimulationConfig)

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "EnvConfig":
        """
        Builds a configuration by overlaying ``values`` on the defaults.

        ``values`` may be nested (``{"edge": {"count": 3}}``) or use dotted
        keys (``{"edge.count": 3}``). Values that cannot be parsed fall back
        to the default with a warning; unknown keys are ignored.
        """
        base = cls()
        overrides: Dict[str, Dict[str, Any]] = {f.name: {} for f in fields(cls)}

        for key, raw in _flatten(values):
            section_name, _, name = key.partition(".")
            if section_name not in overrides or not name:
                logger.warning("Ignoring unknown configuration key %r", key)
                continue
            section = getattr(base, section_name)
            if name not in {f.name for f in fields(section)}:
                logger.warning("Ignoring unknown configuration key %r", key)
                continue
            overrides[section_name][name] = _coerce(key, raw, getattr(section, name))

        return cls(**{
            name: replace(getattr(base, name), **changes)
            for name, changes in overrides.items()
        })


def _flatten(values: Mapping[str, Any], prefix: str = "") -> Iterator[Tuple[str, Any]]:
    for key, value in values.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, Mapping):
            yield from _flatten(value, prefix=f"{dotted}.")
        else:
            yield dotted, value


def _parse_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    text = str(raw).strip().lower()
    if text in ("true", "yes", "on", "1"):
        return True
    if text in ("false", "no", "off", "0"):
        return False
    raise ValueError(f"not a boolean: {raw!r}")


def _parse_int(raw: Any) -> int:
    number = float(raw)
    if not number.is_integer():
        raise ValueError(f"not an integer: {raw!r}")
    return int(number)


def _parse_float(raw: Any) -> float:
    number = float(raw)
    if not math.isfinite(number):
        raise ValueError(f"not a finite number: {raw!r}")
    return number


def _parse_positions(raw: Any) -> Tuple[Tuple[float, float], ...]:
    positions = tuple((_parse_float(x), _parse_float(y)) for x, y in raw)
    return positions


def _parse_sizes(raw: Any) -> Tuple[int, ...]:
    sizes = tuple(_parse_int(v) for v in raw)
    if not sizes:
        raise ValueError("at least one hidden layer is required")
    return sizes


_TUPLE_PARSERS: Dict[str, Callable[[Any], tuple]] = {
    "edge.positions": _parse_positions,
    "agent.hidden_sizes": _parse_sizes,
}


def _coerce(key: str, raw: Any, default: Any) -> Any:
    if isinstance(raw, str):
        # Allow "5.0  # tasks per second" style values
        raw = raw.split("#", 1)[0].strip()
    try:
        if isinstance(default, bool):
            return _parse_bool(raw)
        if isinstance(default, enum.Enum):
            if isinstance(raw, type(default)):
                return raw
            return type(default)[str(raw).strip().upper()]
        if isinstance(default, int):
            return _parse_int(raw)
        if isinstance(default, float):
            return _parse_float(raw)
        if isinstance(default, tuple):
            return _TUPLE_PARSERS[key](raw)
        return type(default)(raw)
    except (TypeError, ValueError, KeyError):
        logger.warning(
            "Invalid value %r for %s, falling back to default %r", raw, key, default
        )
        return default
