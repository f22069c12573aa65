import math
from dataclasses import MISSING, dataclass, field, fields
from typing import Dict, Iterable, List

import numpy as np
import pandas as pd

from .models import LocationKind, Task


@dataclass
class MetricsAggregate:
    """
    Per-task outcomes folded into running totals.

    Latencies are execution times in seconds. Samples are kept both globally
    (for percentiles) and per execution-location tag (LOCAL, EDGE[i], CLOUD).
    """

    total_tasks: int = 0
    successful_tasks: int = 0
    failed_tasks: int = 0
    local_tasks: int = 0
    edge_tasks: int = 0
    cloud_tasks: int = 0
    total_latency_s: float = 0.0
    total_energy_j: float = 0.0
    total_reward: float = 0.0
    network_usage_kb: float = 0.0
    latencies: List[float] = field(default_factory=list)
    location_latencies: Dict[str, List[float]] = field(default_factory=dict)
    priority_counts: Dict[str, int] = field(default_factory=dict)

    def record(self, task: Task) -> None:
        if not task.completed or task.location is None:
            raise ValueError(f"Task {task.id} has not been executed")

        latency = task.execution_time
        self.total_tasks += 1
        if task.met_deadline:
            self.successful_tasks += 1
        else:
            self.failed_tasks += 1

        kind = task.location.kind
        if kind is LocationKind.LOCAL:
            self.local_tasks += 1
        elif kind is LocationKind.EDGE:
            self.edge_tasks += 1
        else:
            self.cloud_tasks += 1
        if kind is not LocationKind.LOCAL:
            self.network_usage_kb += task.input_kb + task.output_kb

        self.total_latency_s += latency
        self.total_energy_j += task.energy_j
        self.total_reward += task.reward
        self.latencies.append(latency)
        self.location_latencies.setdefault(task.location.tag, []).append(latency)
        priority = task.priority.name
        self.priority_counts[priority] = self.priority_counts.get(priority, 0) + 1

    def record_all(self, tasks: Iterable[Task]) -> None:
        for task in tasks:
            self.record(task)

    def merge(self, other: "MetricsAggregate") -> None:
        """Adds ``other``'s samples and totals to this aggregate."""
        for f in fields(self):
            mine, theirs = getattr(self, f.name), getattr(other, f.name)
            if isinstance(mine, list):
                mine.extend(theirs)
            elif isinstance(mine, dict):
                for key, value in theirs.items():
                    if isinstance(value, list):
                        mine.setdefault(key, []).extend(value)
                    else:
                        mine[key] = mine.get(key, 0) + value
            else:
                setattr(self, f.name, mine + theirs)

    def reset(self) -> None:
        for f in fields(self):
            setattr(self, f.name, f.default_factory() if f.default_factory is not MISSING else f.default)

    # ===== read-only accessors =====

    @property
    def success_rate(self) -> float:
        return self.successful_tasks / self.total_tasks if self.total_tasks else 0.0

    @property
    def average_latency(self) -> float:
        return self.total_latency_s / self.total_tasks if self.total_tasks else 0.0

    @property
    def average_energy(self) -> float:
        return self.total_energy_j / self.total_tasks if self.total_tasks else 0.0

    @property
    def average_reward(self) -> float:
        return self.total_reward / self.total_tasks if self.total_tasks else 0.0

    @property
    def average_network_usage(self) -> float:
        offloaded = self.edge_tasks + self.cloud_tasks
        return self.network_usage_kb / offloaded if offloaded else 0.0

    def latency_percentile(self, p: float) -> float:
        """Nearest-rank percentile of all latency samples (0 when empty)."""
        if not 0 <= p <= 100:
            raise ValueError(f"Percentile must be in [0, 100], got {p}")
        if not self.latencies:
            return 0.0
        ordered = sorted(self.latencies)
        index = max(0, math.ceil(p / 100 * len(ordered)) - 1)
        return ordered[min(index, len(ordered) - 1)]

    def location_distribution(self) -> Dict[str, float]:
        """Share of tasks per location kind, in [0, 1]."""
        total = self.total_tasks or 1
        return {
            LocationKind.LOCAL.name: self.local_tasks / total,
            LocationKind.EDGE.name: self.edge_tasks / total,
            LocationKind.CLOUD.name: self.cloud_tasks / total,
        }

    def location_latency_stats(self) -> Dict[str, Dict[str, float]]:
        stats = {}
        for tag, samples in sorted(self.location_latencies.items()):
            values = np.asarray(samples, dtype=float)
            stats[tag] = {
                "count": int(values.size),
                "min": float(values.min()),
                "max": float(values.max()),
                "avg": float(values.mean()),
            }
        return stats

    def summary(self) -> Dict[str, float]:
        distribution = self.location_distribution()
        return {
            "tasks": self.total_tasks,
            "success_rate": self.success_rate,
            "avg_latency_s": self.average_latency,
            "p50_latency_s": self.latency_percentile(50),
            "p95_latency_s": self.latency_percentile(95),
            "p99_latency_s": self.latency_percentile(99),
            "avg_energy_j": self.average_energy,
            "avg_reward": self.average_reward,
            "avg_network_kb": self.average_network_usage,
            "local_share": distribution["LOCAL"],
            "edge_share": distribution["EDGE"],
            "cloud_share": distribution["CLOUD"],
        }

    def to_frame(self) -> pd.DataFrame:
        """Per-location latency statistics, one row per location tag."""
        stats = self.location_latency_stats()
        frame = pd.DataFrame.from_dict(stats, orient="index", columns=["count", "min", "max", "avg"])
        frame.index.name = "location"
        return frame
