"""
network.py

Analytical network model. Transfer times are ``bits / effective bandwidth``;
link latencies are added separately and never folded into bandwidth.

Device <-> edge links degrade with the network quality factor and with
distance to the server, ``(1 - d / R)^2``, and vanish outside coverage.
Edge <-> cloud links only see the backbone quality factor.
"""

import logging
import math
from typing import Iterable, Optional, Sequence

import numpy as np

from .EnvConfig import ConfigurationError, NetworkConfig
from .models import CloudResource, Device, EdgeServer, Task

logger = logging.getLogger(__name__)

# A device sitting exactly on the coverage boundary keeps 1% of the link.
MIN_DISTANCE_FACTOR = 0.01

MIN_QUALITY = 0.1
MAX_QUALITY = 1.0


def _bits(size_kb: float) -> float:
    return size_kb * 8 * 1024


class NetworkModel:
    def __init__(self, cfg: Optional[NetworkConfig] = None):
        cfg = cfg or NetworkConfig()
        if cfg.mobile_to_edge_bandwidth_mbps <= 0 or cfg.edge_to_cloud_bandwidth_mbps <= 0:
            raise ConfigurationError(
                "Network bandwidths must be positive, got "
                f"mobile={cfg.mobile_to_edge_bandwidth_mbps}, backbone={cfg.edge_to_cloud_bandwidth_mbps}"
            )
        if cfg.mobile_to_edge_latency_ms < 0 or cfg.edge_to_cloud_latency_ms < 0:
            raise ConfigurationError("Link latencies must not be negative")

        self.mobile_bandwidth_mbps = cfg.mobile_to_edge_bandwidth_mbps
        self.backbone_bandwidth_mbps = cfg.edge_to_cloud_bandwidth_mbps
        self.mobile_latency_s = cfg.mobile_to_edge_latency_ms / 1000.0
        self.backbone_latency_s = cfg.edge_to_cloud_latency_ms / 1000.0
        self.mobile_quality = 1.0
        self.backbone_quality = 1.0
        self.update_network_conditions(cfg.mobile_quality, cfg.backbone_quality)

    # ----------------------------------------------------------
    @staticmethod
    def distance_factor(distance_m: float, radius_m: float) -> float:
        if distance_m > radius_m:
            return 0.0
        return max((1.0 - distance_m / radius_m) ** 2, MIN_DISTANCE_FACTOR)

    def device_edge_transfer_time(self, size_kb: float, distance_m: float, radius_m: float) -> float:
        """Seconds to move ``size_kb`` between a device and an edge server."""
        factor = self.distance_factor(distance_m, radius_m)
        if factor == 0.0:
            return math.inf
        return _bits(size_kb) / (self.mobile_bandwidth_mbps * self.mobile_quality * factor * 1e6)

    def device_transfer_time(self, size_kb: float) -> float:
        """Seconds for a direct device uplink/downlink with no edge relay in range."""
        return _bits(size_kb) / (self.mobile_bandwidth_mbps * self.mobile_quality * 1e6)

    def edge_cloud_transfer_time(self, size_kb: float) -> float:
        return _bits(size_kb) / (self.backbone_bandwidth_mbps * self.backbone_quality * 1e6)

    def _access_time(self, size_kb: float, device: Device, relay: Optional[EdgeServer]) -> float:
        if relay is not None and relay.in_coverage(device):
            return self.device_edge_transfer_time(size_kb, relay.distance_to(device), relay.coverage_radius_m)
        return self.device_transfer_time(size_kb)

    # ----------------------------------------------------------
    def edge_latency(self, task: Task, device: Device, server: EdgeServer) -> float:
        """Upload + processing + download + one round trip on the mobile link."""
        distance = server.distance_to(device)
        upload = self.device_edge_transfer_time(task.input_kb, distance, server.coverage_radius_m)
        download = self.device_edge_transfer_time(task.output_kb, distance, server.coverage_radius_m)
        return upload + server.processing_time(task) + download + 2 * self.mobile_latency_s

    def cloud_latency(
        self,
        task: Task,
        device: Device,
        relay: Optional[EdgeServer],
        cloud: CloudResource,
    ) -> float:
        """
        Five legs (device->edge, edge->cloud, processing, cloud->edge,
        edge->device) plus a round trip on both the mobile and backbone links.

        Args:
            relay: edge server forwarding the traffic; when it is ``None`` or
                does not cover the device, the device link is used directly.
        """
        legs = (
            self._access_time(task.input_kb, device, relay)
            + self.edge_cloud_transfer_time(task.input_kb)
            + cloud.processing_time(task)
            + self.edge_cloud_transfer_time(task.output_kb)
            + self._access_time(task.output_kb, device, relay)
        )
        return legs + 2 * self.mobile_latency_s + 2 * self.backbone_latency_s

    # ----------------------------------------------------------
    @staticmethod
    def nearest_edge_server(device: Device, servers: Iterable[EdgeServer]) -> Optional[EdgeServer]:
        """Closest server whose coverage includes ``device``, or ``None``."""
        in_range = [s for s in servers if s.in_coverage(device)]
        return min(in_range, key=lambda s: s.distance_to(device), default=None)

    @staticmethod
    def load_balance_factor(servers: Sequence[EdgeServer]) -> float:
        """Population standard deviation of server loads, capped at 1."""
        if len(servers) <= 1:
            return 0.0
        return min(1.0, float(np.std([s.load for s in servers])))

    def update_network_conditions(self, mobile_quality: float, backbone_quality: float) -> None:
        self.mobile_quality = min(MAX_QUALITY, max(MIN_QUALITY, mobile_quality))
        self.backbone_quality = min(MAX_QUALITY, max(MIN_QUALITY, backbone_quality))
        logger.debug(
            "Network conditions: mobile=%.2f backbone=%.2f", self.mobile_quality, self.backbone_quality
        )
