"""
mobility.py

Device movement inside a rectangular area. The model only reads and writes
the position fields of `Device` (x_m, y_m, speed_mps, heading, target,
group_id); it knows nothing about servers or tasks.

Patterns:
    STATIC           devices never move
    RANDOM_WALK      straight-line motion with boundary reflection and
                     occasional random turns
    RANDOM_WAYPOINT  travel to a random target, then pause or change speed
    GROUP_MOBILITY   reference-point groups: each group's reference point
                     random-walks and members hover around it
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from .EnvConfig import ConfigurationError, MobilityConfig, MobilityPattern
from .models import Device

logger = logging.getLogger(__name__)

TWO_PI = 2 * math.pi
TURN_PROBABILITY = 0.1
MAX_TURN = math.pi / 4
PAUSE_PROBABILITY = 0.3
PAUSE_SPEED_FACTOR = 0.1
# Per-tick drift of a group member's offset, as a share of the group radius
GROUP_JITTER = 0.1


@dataclass
class _GroupReference:
    x_m: float
    y_m: float
    heading: float
    speed_mps: float


class MobilityModel:
    def __init__(self, cfg: Optional[MobilityConfig], rng: np.random.Generator):
        cfg = cfg or MobilityConfig()
        if cfg.area_width_m <= 0 or cfg.area_height_m <= 0:
            raise ConfigurationError(
                f"Mobility area must be positive, got {cfg.area_width_m} x {cfg.area_height_m}"
            )
        if cfg.min_speed_mps < 0 or cfg.max_speed_mps < cfg.min_speed_mps:
            raise ConfigurationError(
                f"Invalid speed range [{cfg.min_speed_mps}, {cfg.max_speed_mps}]"
            )
        if cfg.update_interval_s <= 0:
            raise ConfigurationError(f"Mobility update interval must be positive, got {cfg.update_interval_s}")
        if cfg.group_size < 1 or cfg.group_radius_m < 0:
            raise ConfigurationError(
                f"Invalid group settings: size={cfg.group_size}, radius={cfg.group_radius_m}"
            )

        self.pattern = cfg.pattern
        self.width_m = cfg.area_width_m
        self.height_m = cfg.area_height_m
        self.min_speed_mps = cfg.min_speed_mps
        self.max_speed_mps = cfg.max_speed_mps
        self.update_interval_s = cfg.update_interval_s
        self.group_size = cfg.group_size
        self.group_radius_m = cfg.group_radius_m
        self.rng = rng

        self._groups: Dict[int, _GroupReference] = {}
        self._offsets: Dict[int, Tuple[float, float]] = {}

    # ----------------------------------------------------------
    def _random_point(self) -> Tuple[float, float]:
        return float(self.rng.uniform(0, self.width_m)), float(self.rng.uniform(0, self.height_m))

    def _random_speed(self) -> float:
        return float(self.rng.uniform(self.min_speed_mps, self.max_speed_mps))

    def _random_heading(self) -> float:
        return float(self.rng.uniform(0, TWO_PI))

    def _clamp(self, x_m: float, y_m: float) -> Tuple[float, float]:
        return min(max(x_m, 0.0), self.width_m), min(max(y_m, 0.0), self.height_m)

    # ----------------------------------------------------------
    def initialize(self, devices: Sequence[Device]) -> None:
        """Places devices uniformly at random and seeds their motion state."""
        for device in devices:
            device.x_m, device.y_m = self._random_point()
            device.target = None
            device.group_id = None
            device.speed_mps = 0.0
            device.heading = 0.0
            if self.pattern is MobilityPattern.RANDOM_WALK:
                device.heading = self._random_heading()
                device.speed_mps = self._random_speed()
            elif self.pattern is MobilityPattern.RANDOM_WAYPOINT:
                device.target = self._random_point()
                device.speed_mps = self._random_speed()

        if self.pattern is MobilityPattern.GROUP_MOBILITY:
            self._init_groups(devices)

    def _init_groups(self, devices: Sequence[Device]) -> None:
        self._groups.clear()
        self._offsets.clear()
        for index, device in enumerate(devices):
            group_id = index // self.group_size
            if group_id not in self._groups:
                x, y = self._random_point()
                self._groups[group_id] = _GroupReference(x, y, self._random_heading(), self._random_speed())
            device.group_id = group_id

            # Uniform point in the disc around the reference
            radius = self.group_radius_m * math.sqrt(self.rng.random())
            angle = self._random_heading()
            self._offsets[device.id] = (radius * math.cos(angle), radius * math.sin(angle))
            self._place_member(device)

        logger.debug("Initialized %d mobility groups for %d devices", len(self._groups), len(devices))

    # ----------------------------------------------------------
    def update(self, devices: Sequence[Device], dt_s: Optional[float] = None) -> None:
        """Advances every device by one tick of ``dt_s`` seconds."""
        dt_s = self.update_interval_s if dt_s is None else dt_s
        if self.pattern is MobilityPattern.STATIC or dt_s <= 0:
            return

        if self.pattern is MobilityPattern.RANDOM_WALK:
            for device in devices:
                self._walk(device, dt_s)
        elif self.pattern is MobilityPattern.RANDOM_WAYPOINT:
            for device in devices:
                self._waypoint(device, dt_s)
        elif self.pattern is MobilityPattern.GROUP_MOBILITY:
            self._move_groups(devices, dt_s)

    def _walk(self, mover, dt_s: float) -> None:
        """Random-walk step for a device or a group reference point."""
        step = mover.speed_mps * dt_s
        x = mover.x_m + step * math.cos(mover.heading)
        y = mover.y_m + step * math.sin(mover.heading)
        heading = mover.heading
        bounced = False

        if x < 0 or x > self.width_m:
            x = -x if x < 0 else 2 * self.width_m - x
            heading = math.pi - heading
            bounced = True
        if y < 0 or y > self.height_m:
            y = -y if y < 0 else 2 * self.height_m - y
            heading = TWO_PI - heading
            bounced = True

        if not bounced and self.rng.random() < TURN_PROBABILITY:
            heading += self.rng.uniform(-MAX_TURN, MAX_TURN)

        # A step longer than the area would still overshoot after one reflection
        mover.x_m, mover.y_m = self._clamp(x, y)
        mover.heading = heading % TWO_PI

    def _waypoint(self, device: Device, dt_s: float) -> None:
        if device.target is None:
            device.target = self._random_point()
            device.speed_mps = self._random_speed()

        tx, ty = device.target
        distance = math.hypot(tx - device.x_m, ty - device.y_m)
        reach = device.speed_mps * dt_s

        if distance <= reach:
            device.x_m, device.y_m = tx, ty
            device.target = self._random_point()
            speed = self._random_speed()
            if self.rng.random() < PAUSE_PROBABILITY:
                speed *= PAUSE_SPEED_FACTOR
            device.speed_mps = speed
        else:
            device.heading = math.atan2(ty - device.y_m, tx - device.x_m) % TWO_PI
            device.x_m, device.y_m = self._clamp(
                device.x_m + reach * (tx - device.x_m) / distance,
                device.y_m + reach * (ty - device.y_m) / distance,
            )

    def _move_groups(self, devices: Sequence[Device], dt_s: float) -> None:
        for reference in self._groups.values():
            self._walk(reference, dt_s)

        jitter = GROUP_JITTER * self.group_radius_m
        for device in devices:
            if device.group_id not in self._groups:
                # Joined after initialize(); moves on its own
                self._walk(device, dt_s)
                continue
            dx, dy = self._offsets[device.id]
            dx += self.rng.uniform(-jitter, jitter)
            dy += self.rng.uniform(-jitter, jitter)
            norm = math.hypot(dx, dy)
            if norm > self.group_radius_m > 0:
                dx, dy = dx * self.group_radius_m / norm, dy * self.group_radius_m / norm
            self._offsets[device.id] = (dx, dy)
            self._place_member(device)

    def _place_member(self, device: Device) -> None:
        reference = self._groups[device.group_id]
        dx, dy = self._offsets[device.id]
        device.x_m, device.y_m = self._clamp(reference.x_m + dx, reference.y_m + dy)
        device.heading = reference.heading
        device.speed_mps = reference.speed_mps
