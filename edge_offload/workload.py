"""
workload.py

Synthetic task workload: task attributes drawn uniformly from configured
ranges, arrivals from a UNIFORM, POISSON, BURSTY or DIURNAL process.
"""

import logging
import math
from typing import List, Optional, Sequence

import numpy as np

from .EnvConfig import ArrivalPattern, ConfigurationError, WorkloadConfig
from .models import Device, Task, TaskPriority

logger = logging.getLogger(__name__)

BURST_PROBABILITY = 0.2
BURST_FACTOR = 5.0


def diurnal_multiplier(hour: float) -> float:
    """Arrival-rate multiplier for an hour of day in [0, 24)."""
    if hour < 6:
        return 0.2
    if hour < 9:
        return 0.2 + (hour - 6) * 0.6
    if hour < 17:
        return 2.0
    if hour < 22:
        return 2.0 - (hour - 17) * 0.36
    return 0.2


class TaskGenerator:
    def __init__(self, cfg: Optional[WorkloadConfig], rng: np.random.Generator):
        cfg = cfg or WorkloadConfig()
        if cfg.arrival_rate <= 0:
            raise ConfigurationError(f"Arrival rate must be positive, got {cfg.arrival_rate}")
        if cfg.min_deadline_s <= 0 or cfg.max_deadline_s < cfg.min_deadline_s:
            raise ConfigurationError(
                f"Invalid deadline range [{cfg.min_deadline_s}, {cfg.max_deadline_s}]"
            )
        if cfg.min_length_mi <= 0 or cfg.max_length_mi < cfg.min_length_mi:
            raise ConfigurationError(f"Invalid task length range [{cfg.min_length_mi}, {cfg.max_length_mi}]")
        if cfg.min_input_kb < 0 or cfg.max_input_kb < cfg.min_input_kb:
            raise ConfigurationError(f"Invalid input size range [{cfg.min_input_kb}, {cfg.max_input_kb}]")
        if cfg.min_output_kb < 0 or cfg.max_output_kb < cfg.min_output_kb:
            raise ConfigurationError(f"Invalid output size range [{cfg.min_output_kb}, {cfg.max_output_kb}]")
        if not 0 <= cfg.priority_high_prob + cfg.priority_medium_prob <= 1:
            raise ConfigurationError("Priority probabilities must sum to at most 1")

        self.cfg = cfg
        self.pattern = cfg.arrival_pattern
        self.rate = cfg.arrival_rate
        self.rng = rng
        self._next_id = 0

    def reset(self) -> None:
        self._next_id = 0

    # ----------------------------------------------------------
    def _priority(self) -> TaskPriority:
        draw = self.rng.random()
        if draw < self.cfg.priority_high_prob:
            return TaskPriority.HIGH
        if draw < self.cfg.priority_high_prob + self.cfg.priority_medium_prob:
            return TaskPriority.MEDIUM
        return TaskPriority.LOW

    def generate(self, device: Device, arrival_time: float) -> Task:
        """Creates a task for ``device`` arriving at ``arrival_time``."""
        c = self.cfg
        task = Task(
            id=self._next_id,
            length_mi=float(self.rng.uniform(c.min_length_mi, c.max_length_mi)),
            input_kb=float(self.rng.uniform(c.min_input_kb, c.max_input_kb)),
            output_kb=float(self.rng.uniform(c.min_output_kb, c.max_output_kb)),
            deadline_s=float(self.rng.uniform(c.min_deadline_s, c.max_deadline_s)),
            device_id=device.id,
            arrival_time=arrival_time,
            priority=self._priority(),
        )
        self._next_id += 1
        device.tasks_generated += 1
        return task

    def next_interarrival(self, now: float = 0.0) -> float:
        """Seconds until the next arrival, drawn at simulated time ``now``."""
        if self.pattern is ArrivalPattern.UNIFORM:
            return 1.0 / self.rate

        rate = self.rate
        if self.pattern is ArrivalPattern.BURSTY:
            if self.rng.random() < BURST_PROBABILITY:
                rate *= BURST_FACTOR
        elif self.pattern is ArrivalPattern.DIURNAL:
            hour = (now / 3600.0) % 24
            rate *= diurnal_multiplier(hour)
        return -math.log(1.0 - self.rng.random()) / rate

    def initial_batch(self, devices: Sequence[Device], count: int) -> List[Task]:
        """
        Generates ``count`` tasks spread round-robin over ``devices``, with
        arrival times following the arrival process.
        """
        if not devices:
            raise ValueError("initial_batch needs at least one device")
        tasks = []
        now = 0.0
        for i in range(count):
            tasks.append(self.generate(devices[i % len(devices)], now))
            now += self.next_interarrival(now)
        logger.debug("Generated initial batch of %d tasks over %.2f s", count, now)
        return tasks
