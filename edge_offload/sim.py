"""
sim.py

Synchronous simulation loop driving task arrival, mobility, decisions and
metric collection.

Each episode advances a simulated clock in fixed ticks. At every tick each
device whose next arrival has elapsed generates a task, the active policy
picks an action from the environment state and the environment executes
it. Mobility runs on its own update interval; server queues drain as the
clock advances. Training and evaluation share the same loop.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Union

import numpy as np
import pandas as pd
from scipy.ndimage import uniform_filter1d

from .EnvConfig import ConfigurationError, EnvConfig
from .dqn_agent import DQNAgent
from .metrics import MetricsAggregate
from .mobility import MobilityModel
from .models import Device, Task, build_entities
from .network import NetworkModel
from .policy import AgentPolicy, BaselineStrategy, Policy, make_baseline
from .rl_env import OffloadEnv
from .scenario_config import ScenarioConfig
from .workload import TaskGenerator

logger = logging.getLogger(__name__)

Chooser = Callable[[np.ndarray, Task, Device], int]


@dataclass
class EpisodeResult:
    metrics: MetricsAggregate
    total_reward: float
    tasks: int
    losses: List[float] = field(default_factory=list)


@dataclass
class TrainingHistory:
    episode_rewards: List[float] = field(default_factory=list)
    episode_losses: List[float] = field(default_factory=list)
    success_rates: List[float] = field(default_factory=list)
    epsilons: List[float] = field(default_factory=list)
    tasks: List[int] = field(default_factory=list)
    stopped_early: bool = False

    def smoothed_rewards(self, size: int = 10) -> List[float]:
        """Moving average of episode rewards for trend inspection."""
        if not self.episode_rewards:
            return []
        size = max(1, min(size, len(self.episode_rewards)))
        return list(uniform_filter1d(np.asarray(self.episode_rewards, dtype=float), size=size))


class Simulator:
    def __init__(
        self,
        config: Optional[EnvConfig] = None,
        scenario: Optional[ScenarioConfig] = None,
        device: str = "cpu",
    ):
        """Initialize entities, models, environment and agent from ``config``."""
        self.config = config or EnvConfig()
        sim = self.config.simulation
        if sim.horizon_s <= 0 or sim.time_step_s <= 0:
            raise ConfigurationError(
                f"Horizon and time step must be positive, got {sim.horizon_s}, {sim.time_step_s}"
            )
        if sim.max_tasks_per_episode <= 0:
            raise ConfigurationError(f"max_tasks_per_episode must be positive, got {sim.max_tasks_per_episode}")
        if sim.warm_up_s < 0:
            raise ConfigurationError(f"Warm-up period must not be negative, got {sim.warm_up_s}")

        self.scenario = scenario
        # Workload and mobility share one stream; the agent explores with its own
        self.rng = np.random.default_rng(sim.seed)

        # === Entities ===
        self.devices, self.edge_servers, self.cloud = build_entities(self.config)

        # === Models ===
        self.network = NetworkModel(self.config.network)
        self.mobility = MobilityModel(self.config.mobility, self.rng)
        self.generator = TaskGenerator(self.config.workload, self.rng)
        self.env = OffloadEnv(self.devices, self.edge_servers, self.cloud, self.network, self.config.reward)

        # === Learning ===
        self.agent = DQNAgent(
            self.env.state_dim,
            self.env.n_actions,
            self.config.agent,
            rng=np.random.default_rng(sim.seed + 1),
            seed=sim.seed,
            device=device,
        )

        self.mobility.initialize(self.devices)
        self._stop_requested = False

    # ----------------------------------------------------------
    def request_stop(self) -> None:
        """
        Ends training after the decision in progress; safe from signal handlers.

        Evaluation and comparison episodes ignore the request.
        """
        self._stop_requested = True

    def _reseed(self, seed: int) -> None:
        self.rng = np.random.default_rng(seed)
        self.mobility.rng = self.rng
        self.generator.rng = self.rng

    def _apply_network_conditions(self, t: float) -> None:
        conditions = self.scenario.network_conditions(t) if self.scenario else None
        if conditions is None:
            conditions = (self.config.network.mobile_quality, self.config.network.backbone_quality)
        if conditions != (self.network.mobile_quality, self.network.backbone_quality):
            self.network.update_network_conditions(*conditions)

    def _as_chooser(self, policy: Policy) -> Chooser:
        if isinstance(policy, AgentPolicy):
            return lambda state, task, device: policy.agent.select_action(state, greedy=True)
        return lambda state, task, device: policy.decide(task, device, self.edge_servers, self.cloud)

    # ----------------------------------------------------------
    def _run_episode(self, choose: Chooser, training: bool) -> EpisodeResult:
        cfg = self.config.simulation
        train_every = max(1, self.config.agent.train_frequency)
        dt = cfg.time_step_s

        # 1) Fresh statistics (and positions) for every episode
        self.env.reset()
        self.generator.reset()
        if cfg.reset_positions:
            self.mobility.initialize(self.devices)
        next_arrival = {d.id: self.generator.next_interarrival(0.0) for d in self.devices}
        next_move = self.mobility.update_interval_s

        t = 0.0
        tasks = 0
        total_reward = 0.0
        losses: List[float] = []

        # 2) Tick loop
        while (
            t < cfg.horizon_s
            and tasks < cfg.max_tasks_per_episode
            and not (training and self._stop_requested)
        ):
            self._apply_network_conditions(t)
            for device in self.devices:
                while (
                    next_arrival[device.id] <= t
                    and tasks < cfg.max_tasks_per_episode
                    and not (training and self._stop_requested)
                ):
                    arrival = next_arrival[device.id]
                    task = self.generator.generate(device, arrival)
                    state = self.env.get_state(device, task)
                    action = choose(state, task, device)
                    reward = self.env.execute_action(device, task, action, now=arrival)
                    tasks += 1
                    total_reward += reward
                    next_arrival[device.id] = arrival + self.generator.next_interarrival(arrival)

                    if training:
                        # Horizon cut-offs are truncations, not terminal states
                        done = tasks >= cfg.max_tasks_per_episode
                        next_state = self.env.get_state(device, task)
                        self.agent.store_experience(state, action, reward, next_state, done)
                        if tasks % train_every == 0:
                            loss = self.agent.train()
                            if loss is not None:
                                losses.append(loss)

            t += dt
            for server in self.edge_servers:
                server.advance(dt)
            self.cloud.advance(dt)

            # 3) Mobility on its own interval
            while next_move <= t:
                self.mobility.update(self.devices)
                next_move += self.mobility.update_interval_s

        # 4) Fold completed tasks into the aggregate
        metrics = MetricsAggregate()
        for device in self.devices:
            metrics.record_all(task for task in device.completed_tasks if task.arrival_time >= cfg.warm_up_s)
        return EpisodeResult(metrics=metrics, total_reward=total_reward, tasks=tasks, losses=losses)

    # ----------------------------------------------------------
    def train(
        self,
        episodes: Optional[int] = None,
        checkpoint_path: Optional[Union[str, Path]] = None,
        log_every: int = 10,
    ) -> TrainingHistory:
        """
        Trains the agent for ``episodes`` episodes.

        Exploration decays once per completed episode. When `request_stop`
        is called, the current decision finishes, the loop exits and the
        model is still written to ``checkpoint_path``.
        """
        episodes = self.config.simulation.training_episodes if episodes is None else episodes
        history = TrainingHistory()
        self._stop_requested = False

        for ep in range(episodes):
            result = self._run_episode(lambda state, task, device: self.agent.select_action(state), training=True)
            mean_loss = float(np.mean(result.losses)) if result.losses else float("nan")

            history.episode_rewards.append(result.total_reward)
            history.episode_losses.append(mean_loss)
            history.success_rates.append(result.metrics.success_rate)
            history.tasks.append(result.tasks)

            if self._stop_requested:
                history.epsilons.append(self.agent.epsilon)
                history.stopped_early = True
                logger.info("Stop requested during episode %d; checkpointing", ep + 1)
                break

            history.epsilons.append(self.agent.decay_epsilon())
            if (ep + 1) % log_every == 0 or ep == 0:
                logger.info(
                    "Episode %03d | tasks=%5d | return=%9.3f | success_rate=%5.2f | "
                    "epsilon=%.3f | loss=%.4f | avg_return(%d)=%9.3f",
                    ep + 1,
                    result.tasks,
                    result.total_reward,
                    result.metrics.success_rate,
                    self.agent.epsilon,
                    mean_loss,
                    log_every,
                    float(np.mean(history.episode_rewards[-log_every:])),
                )

        if checkpoint_path is not None:
            self.agent.save(checkpoint_path)
        self._stop_requested = False
        return history

    def evaluate(self, policy: Optional[Policy] = None, runs: Optional[int] = None) -> MetricsAggregate:
        """
        Runs ``policy`` (the greedy agent by default) for ``runs`` episodes
        seeded ``seed``, ``seed + 1``, ... and merges their metrics.
        """
        runs = self.config.simulation.evaluation_runs if runs is None else runs
        policy = policy or AgentPolicy(self.agent, self.env)
        choose = self._as_chooser(policy)

        metrics = MetricsAggregate()
        for run in range(runs):
            self._reseed(self.config.simulation.seed + run)
            metrics.merge(self._run_episode(choose, training=False).metrics)
        logger.info(
            "Evaluated %s over %d run(s): tasks=%d success_rate=%.3f avg_latency=%.4fs",
            policy.name, runs, metrics.total_tasks, metrics.success_rate, metrics.average_latency,
        )
        return metrics

    def compare(
        self,
        strategies: Optional[Iterable[BaselineStrategy]] = None,
        runs: Optional[int] = None,
        include_agent: bool = True,
    ) -> Dict[str, MetricsAggregate]:
        """
        Evaluates baselines (and the agent) on identical workloads: every
        strategy replays run ``i`` from seed ``seed + i``.
        """
        cfg = self.config.simulation
        runs = cfg.comparison_runs if runs is None else runs
        strategies = list(BaselineStrategy) if strategies is None else list(strategies)

        policies: Dict[str, Policy] = {s.name: make_baseline(s, self.network, seed=cfg.seed) for s in strategies}
        if include_agent:
            policies[AgentPolicy.name] = AgentPolicy(self.agent, self.env)

        results = {name: MetricsAggregate() for name in policies}
        for run in range(runs):
            for name, policy in policies.items():
                self._reseed(cfg.seed + run)
                results[name].merge(self._run_episode(self._as_chooser(policy), training=False).metrics)
            logger.info("Comparison run %d/%d complete", run + 1, runs)
        return results


def comparison_frame(results: Dict[str, MetricsAggregate]) -> pd.DataFrame:
    """One row of summary statistics per strategy."""
    frame = pd.DataFrame({name: metrics.summary() for name, metrics in results.items()}).T
    frame.index.name = "strategy"
    return frame
