import logging
import os
import pickle
from collections import deque, namedtuple
from pathlib import Path
from typing import List, Optional, Union

import numpy as np
import torch
import torch.nn as nn
import torch.optim as optim

from .EnvConfig import AgentConfig, ConfigurationError

logger = logging.getLogger(__name__)

Experience = namedtuple("Experience", ["state", "action", "reward", "next_state", "done"])


class ModelLoadError(RuntimeError):
    """A saved model could not be read or does not fit the agent."""


def _frozen(vector) -> np.ndarray:
    array = np.array(vector, dtype=np.float32, copy=True)
    array.flags.writeable = False
    return array


class QNetwork(nn.Module):
    def __init__(self, state_dim: int, n_actions: int, hidden_sizes=(64, 32)):
        super().__init__()
        layers = []
        in_dim = state_dim
        for size in hidden_sizes:
            layers += [nn.Linear(in_dim, size), nn.ReLU()]
            in_dim = size
        layers.append(nn.Linear(in_dim, n_actions))
        self.model = nn.Sequential(*layers)

    def forward(self, x):
        return self.model(x)


class ReplayBuffer:
    """
    FIFO experience memory with uniform sampling without replacement.

    Once ``capacity`` entries are stored, every push evicts the oldest one.
    """

    def __init__(self, capacity: int, rng: np.random.Generator):
        if capacity <= 0:
            raise ConfigurationError(f"Replay capacity must be positive, got {capacity}")
        self.capacity = capacity
        self.memory = deque(maxlen=capacity)
        self.rng = rng

    def push(self, state, action: int, reward: float, next_state, done: bool) -> None:
        self.memory.append(Experience(_frozen(state), int(action), float(reward), _frozen(next_state), bool(done)))

    def sample(self, batch_size: int) -> List[Experience]:
        if batch_size > len(self.memory):
            raise ValueError(f"Cannot sample {batch_size} experiences from {len(self.memory)}")
        indices = self.rng.choice(len(self.memory), size=batch_size, replace=False)
        return [self.memory[i] for i in indices]

    def snapshot(self) -> List[Experience]:
        """Current contents, oldest first."""
        return list(self.memory)

    def __len__(self):
        return len(self.memory)


class DQNAgent:
    """
    Value-based agent with epsilon-greedy exploration, experience replay and
    a hard-synced target network.

    - select_action(state) → int
    - store_experience(state, action, reward, next_state, done)
    - train() → loss, or None while the buffer is smaller than a batch
    """

    def __init__(
        self,
        state_dim: int,
        n_actions: int,
        cfg: Optional[AgentConfig] = None,
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None,
        device: str = "cpu",
    ):
        cfg = cfg or AgentConfig()
        if cfg.learning_rate <= 0:
            raise ConfigurationError(f"Learning rate must be positive, got {cfg.learning_rate}")
        if not 0.0 <= cfg.discount_factor <= 1.0:
            raise ConfigurationError(f"Discount factor must be in [0, 1], got {cfg.discount_factor}")
        if not 0.0 <= cfg.epsilon_min <= cfg.epsilon <= 1.0:
            raise ConfigurationError(
                f"Exploration settings must satisfy 0 <= min <= epsilon <= 1, got {cfg.epsilon_min}, {cfg.epsilon}"
            )
        if not 0.0 < cfg.epsilon_decay <= 1.0:
            raise ConfigurationError(f"Epsilon decay must be in (0, 1], got {cfg.epsilon_decay}")
        if cfg.batch_size <= 0 or cfg.target_update_frequency <= 0:
            raise ConfigurationError(
                f"Batch size and target update frequency must be positive, "
                f"got {cfg.batch_size}, {cfg.target_update_frequency}"
            )

        if seed is not None:
            torch.manual_seed(seed)
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.device = torch.device(device)

        self.state_dim = state_dim
        self.n_actions = n_actions
        self.hidden_sizes = tuple(cfg.hidden_sizes)
        self.gamma = cfg.discount_factor
        self.epsilon = cfg.epsilon
        self.epsilon_min = cfg.epsilon_min
        self.epsilon_decay = cfg.epsilon_decay
        self.batch_size = cfg.batch_size
        self.target_update_frequency = cfg.target_update_frequency

        self.policy_net = QNetwork(state_dim, n_actions, self.hidden_sizes).to(self.device)
        self.target_net = QNetwork(state_dim, n_actions, self.hidden_sizes).to(self.device)
        self.sync_target()
        self.target_net.eval()

        self.optimizer = optim.Adam(self.policy_net.parameters(), lr=cfg.learning_rate)
        self.loss_fn = nn.MSELoss()
        self.memory = ReplayBuffer(cfg.replay_capacity, self.rng)
        self.train_steps = 0

    # ----------------------------------------------------------
    @torch.no_grad()
    def q_values(self, state: np.ndarray) -> np.ndarray:
        state = torch.as_tensor(state, dtype=torch.float32, device=self.device).unsqueeze(0)
        return self.policy_net(state).squeeze(0).cpu().numpy()

    def select_action(self, state: np.ndarray, greedy: bool = False) -> int:
        """Epsilon-greedy over the policy network; ``greedy`` disables exploration."""
        if not greedy and self.rng.random() < self.epsilon:
            return int(self.rng.integers(self.n_actions))
        return int(np.argmax(self.q_values(state)))

    def store_experience(self, state, action: int, reward: float, next_state, done: bool) -> None:
        self.memory.push(state, action, reward, next_state, done)

    def decay_epsilon(self) -> float:
        """Applies one episode's worth of exploration decay."""
        self.epsilon = max(self.epsilon_min, self.epsilon * self.epsilon_decay)
        return self.epsilon

    def sync_target(self) -> None:
        self.target_net.load_state_dict(self.policy_net.state_dict())

    # ----------------------------------------------------------
    def train(self) -> Optional[float]:
        """
        Fits the policy network on one sampled batch.

        Targets equal the network's own output except at the taken action,
        which becomes ``r + gamma * max_a' Q_target(s', a')`` (``r`` for
        terminal transitions). Every ``target_update_frequency`` calls the
        target network is overwritten with the policy parameters.

        Returns:
            The batch loss, or ``None`` when the buffer holds fewer than
            ``batch_size`` experiences.
        """
        if len(self.memory) < self.batch_size:
            return None

        batch = self.memory.sample(self.batch_size)
        states = torch.as_tensor(np.stack([e.state for e in batch]), dtype=torch.float32, device=self.device)
        next_states = torch.as_tensor(np.stack([e.next_state for e in batch]), dtype=torch.float32, device=self.device)
        actions = torch.as_tensor([e.action for e in batch], dtype=torch.int64, device=self.device)
        rewards = torch.as_tensor([e.reward for e in batch], dtype=torch.float32, device=self.device)
        dones = torch.as_tensor([e.done for e in batch], dtype=torch.float32, device=self.device)

        q_pred = self.policy_net(states)
        with torch.no_grad():
            next_max = self.target_net(next_states).max(dim=1).values
            td_target = rewards + self.gamma * next_max * (1.0 - dones)
            target = q_pred.detach().clone()
            target[torch.arange(self.batch_size, device=self.device), actions] = td_target

        loss = self.loss_fn(q_pred, target)
        self.optimizer.zero_grad()
        loss.backward()
        torch.nn.utils.clip_grad_norm_(self.policy_net.parameters(), max_norm=5.0)
        self.optimizer.step()

        self.train_steps += 1
        if self.train_steps % self.target_update_frequency == 0:
            self.sync_target()
            logger.debug("Target network synced after %d training steps", self.train_steps)
        return float(loss.item())

    # ----------------------------------------------------------
    def save(self, path: Union[str, Path]) -> None:
        """Writes the policy-network parameters to ``path`` atomically."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            with open(tmp_path, "wb") as fh:
                torch.save(self.policy_net.state_dict(), fh)
            os.replace(tmp_path, path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()
        logger.info("Saved model to %s", path)

    def load(self, path: Union[str, Path]) -> None:
        """
        Restores policy-network parameters from ``path`` and re-syncs the
        target network. On failure the current parameters are kept and
        ``ModelLoadError`` is raised.
        """
        try:
            with open(path, "rb") as fh:
                state_dict = torch.load(fh, map_location=self.device, weights_only=True)
            candidate = QNetwork(self.state_dim, self.n_actions, self.hidden_sizes).to(self.device)
            candidate.load_state_dict(state_dict)
        except (OSError, EOFError, RuntimeError, pickle.UnpicklingError, KeyError, TypeError, ValueError) as exc:
            raise ModelLoadError(f"Could not load model from {path}: {exc}") from exc

        self.policy_net.load_state_dict(candidate.state_dict())
        self.sync_target()
        logger.info("Loaded model from %s", path)
