"""
scenario_config.py

Network-condition scenarios. Each scenario is a schedule of
(start_s, end_s, mobile_quality, backbone_quality) windows that the
simulator applies to the `NetworkModel` as simulated time advances.
Outside every window the configured qualities are used.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

Window = Tuple[float, float, float, float]


@dataclass
class ScenarioConfig:
    """Configuration for a simulation scenario."""
    name: str
    description: str
    # (start_s, end_s, mobile_quality, backbone_quality)
    network_schedule: List[Window] = field(default_factory=list)

    def __post_init__(self):
        for start, end, mobile, backbone in self.network_schedule:
            if not 0 <= start < end:
                raise ValueError(f"Invalid window [{start}, {end}) in scenario {self.name!r}")
            if not (0 < mobile <= 1 and 0 < backbone <= 1):
                raise ValueError(
                    f"Link qualities must be in (0, 1], got {mobile}, {backbone} in scenario {self.name!r}"
                )

    def network_conditions(self, t: float) -> Optional[Tuple[float, float]]:
        """(mobile_quality, backbone_quality) active at time ``t``, or None."""
        for start, end, mobile, backbone in self.network_schedule:
            if start <= t < end:
                return mobile, backbone
        return None


BASELINE = ScenarioConfig(
    name="Baseline",
    description="Configured link qualities throughout",
)

DEGRADED_MOBILE = ScenarioConfig(
    name="Degraded mobile link",
    description="Wireless access drops to 30% quality between 25 s and 50 s",
    network_schedule=[
        (25.0, 50.0, 0.3, 0.95),
    ],
)

BACKBONE_CONGESTION = ScenarioConfig(
    name="Backbone congestion",
    description="Edge-to-cloud backbone congested (20%) between 40 s and 80 s",
    network_schedule=[
        (40.0, 80.0, 0.9, 0.2),
    ],
)


ALL_SCENARIOS = {
    "baseline": BASELINE,
    "degraded_mobile": DEGRADED_MOBILE,
    "backbone_congestion": BACKBONE_CONGESTION,
}


def get_scenario(scenario_key: str) -> ScenarioConfig:
    """Get scenario configuration by key."""
    if scenario_key not in ALL_SCENARIOS:
        raise ValueError(
            f"Unknown scenario: {scenario_key}. "
            f"Available: {list(ALL_SCENARIOS.keys())}"
        )
    return ALL_SCENARIOS[scenario_key]


def list_scenarios() -> List[str]:
    """Keys of all registered scenarios."""
    return list(ALL_SCENARIOS)
