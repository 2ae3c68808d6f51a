"""Proximal Policy Optimization: rollout collection, GAE and clipped-objective updates."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

import numpy as np

from sfrl.defs import (
    Action,
    ActionSpace,
    ActorId,
    Environment,
    ModelId,
    ModelManager,
    Observation,
    StepResult,
)
from sfrl.nn import Adam, ModelLogits, log_softmax, softmax

# 0.5 * ln(2 * pi)
_HALF_LOG_2PI = 0.9189385
_ADV_EPSILON = 1e-8


class _PolicyModel(Protocol):
    def model_id(self) -> ModelId: ...

    def forward(self, inputs: np.ndarray) -> ModelLogits: ...

    def parameters(self) -> List[np.ndarray]: ...

    def backward(self, inputs, grad_mean, grad_log_std, grad_values, *args, **kwargs) -> List[np.ndarray]: ...


@dataclass
class PPOConfig:
    """Hyper-parameters of the PPO trainer."""

    clip_ratio: float
    gamma: float
    gae_lambda: float
    value_coef: float
    entropy_coef: float
    learning_rate: float
    batch_size: int
    max_steps: int
    epochs_per_rollout: int


@dataclass
class TrajectoryPoint:
    """One step of one actor: what it saw, did, and received."""

    observation: Observation
    value: float
    action: Action = field(default_factory=Action)
    log_prob: float = 0.0
    reward: float = 0.0
    done: float = 0.0


class Trajectory:
    """Per-actor sequences of trajectory points."""

    def __init__(self) -> None:
        self.paths: Dict[ActorId, List[TrajectoryPoint]] = {}

    def push(self, actor_id: ActorId, point: TrajectoryPoint) -> None:
        self.paths.setdefault(actor_id, []).append(point)

    def last(self, actor_id: ActorId) -> TrajectoryPoint:
        """Return the most recent point of the actor; KeyError if it has none."""
        path = self.paths.get(actor_id)
        if not path:
            raise KeyError(f"No trajectory points for actor {actor_id}")
        return path[-1]


@dataclass
class TrainingData:
    """Batched arrays for one model, ready for the loss computation."""

    action_space: ActionSpace
    obs: np.ndarray
    discrete_actions: np.ndarray
    continuous_actions: np.ndarray
    log_probs: np.ndarray
    advantages: np.ndarray
    returns: np.ndarray


@dataclass
class _OutputGrads:
    mean: np.ndarray
    log_std: np.ndarray
    values: np.ndarray
    discrete: List[np.ndarray] = field(default_factory=list)


@dataclass
class _ModelBatch:
    action_space: ActionSpace
    advantages: List[float] = field(default_factory=list)
    returns: List[float] = field(default_factory=list)
    observations: List[float] = field(default_factory=list)
    continuous_actions: List[float] = field(default_factory=list)
    discrete_actions: List[int] = field(default_factory=list)
    log_probs: List[float] = field(default_factory=list)


def discrete_actions_to_one_hot(actions: np.ndarray, discrete_sizes: Sequence[int]) -> np.ndarray:
    """Turn [batch, heads] action indices into [batch, sum(sizes)] one-hot rows."""
    actions = np.asarray(actions, dtype=np.int64)
    if actions.ndim != 2:
        raise ValueError(f"Expected a [batch, heads] array, got shape {actions.shape}")
    batch, heads = actions.shape
    if heads != len(discrete_sizes):
        raise ValueError(
            "Discrete Action dimension is not correct. Tensor heads size should match to "
            f"discrete action space size. Tensor heads: {heads}, "
            f"Discrete Action Space: {len(discrete_sizes)}"
        )
    parts = []
    for column, size in zip(actions.T, discrete_sizes):
        if np.any((column < 0) | (column >= size)):
            raise ValueError(f"Action index out of range for a head of size {size}")
        parts.append(np.eye(size)[column])
    if not parts:
        return np.zeros((batch, 0))
    return np.concatenate(parts, axis=1)


def _stack_observations(group: Sequence[Tuple[ActorId, Observation]]) -> np.ndarray:
    rows = [observation.data for _, observation in group]
    dims = {len(row) for row in rows}
    if len(dims) != 1:
        raise ValueError(f"Observations of one model must share a size, got sizes {sorted(dims)}")
    return np.asarray(rows, dtype=np.float64)


def _as_matrix(flat: Sequence[float], rows: int, dtype) -> np.ndarray:
    array = np.asarray(flat, dtype=dtype)
    return array.reshape(rows, array.size // rows)


class PPOTrainer:
    """Runs rollouts in an environment and updates the models that drive its actors."""

    def __init__(
        self,
        config: PPOConfig,
        model_manager: ModelManager,
        optimizer: Optional[Adam] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self.config = config
        self.model_manager = model_manager
        self.optimizer = optimizer if optimizer is not None else Adam()
        self._rng = rng if rng is not None else np.random.default_rng()

    def train_step(self, env: Environment) -> None:
        """One full iteration: rollout, advantage estimation, policy update."""
        trajectory = self.collect_trajectory(env)
        training_data = self.build_training_data(env, trajectory)
        self.update_policy(training_data)

    # Rollout

    def collect_trajectory(self, env: Environment) -> Trajectory:
        obs_map = env.reset()
        trajectory = Trajectory()
        for _ in range(self.config.batch_size):
            groups: Dict[ModelId, List[Tuple[ActorId, Observation]]] = {}
            for actor_id, observation in obs_map.items():
                groups.setdefault(env.model_id(actor_id), []).append((actor_id, observation))

            actions: Dict[ActorId, Action] = {}
            for model_id, group in groups.items():
                model = self.model_manager.get_model_by_id(model_id)
                logits = model.forward(_stack_observations(group))
                actions.update(self._sample(env, logits, group, trajectory))

            result = env.step(actions)
            self._record_step(result, trajectory)
            obs_map = result.observations
        return trajectory

    def _sample(
        self,
        env: Environment,
        logits: ModelLogits,
        group: Sequence[Tuple[ActorId, Observation]],
        trajectory: Trajectory,
    ) -> Dict[ActorId, Action]:
        values = np.asarray(logits.values, dtype=np.float64).reshape(-1)
        if values.size != len(group):
            raise ValueError(f"Model returned {values.size} values for {len(group)} actors")
        for (actor_id, observation), value in zip(group, values):
            trajectory.push(actor_id, TrajectoryPoint(Observation(list(observation.data)), float(value)))

        for head in logits.discrete:
            probs = softmax(head, axis=1)
            all_log_probs = log_softmax(head, axis=1)
            for (actor_id, _), actor_probs, actor_log_probs in zip(group, probs, all_log_probs):
                index = int(self._rng.choice(actor_probs.size, p=actor_probs))
                point = trajectory.last(actor_id)
                point.action.discrete.append(index)
                point.log_prob += float(actor_log_probs[index])

        mean = np.asarray(logits.continuous_mean, dtype=np.float64)
        log_std = np.asarray(logits.continuous_log_std, dtype=np.float64)
        if mean.shape[0] > 0:
            if mean.shape[0] != log_std.shape[0]:
                raise ValueError(
                    "Continuous mean and log_std arrays should have the same size. "
                    f"Mean size: {mean.shape[0]}, Std size: {log_std.shape[0]}"
                )
            std = np.exp(log_std)
            sampled = mean + self._rng.standard_normal(mean.shape) * std
            log_probs = (
                -((sampled - mean) ** 2) / (2.0 * std**2) - log_std - _HALF_LOG_2PI
            ).sum(axis=1)

            for (actor_id, _), row, row_log_prob in zip(group, sampled, log_probs):
                clamped = row.copy()
                for i, (low, high) in zip(range(clamped.size), env.action_space(actor_id).continuous):
                    clamped[i] = min(max(clamped[i], low), high)
                point = trajectory.last(actor_id)
                point.action.continuous = [float(v) for v in clamped]
                point.log_prob += float(row_log_prob)

        actions = {}
        for actor_id, _ in group:
            chosen = trajectory.last(actor_id).action
            actions[actor_id] = Action(list(chosen.discrete), list(chosen.continuous))
        return actions

    @staticmethod
    def _record_step(result: StepResult, trajectory: Trajectory) -> None:
        for actor_id, reward in result.rewards.items():
            finished = result.terminated.get(actor_id, False) or result.truncated.get(actor_id, False)
            point = trajectory.last(actor_id)
            point.reward = float(reward)
            point.done = 1.0 if finished else 0.0

    # Advantage estimation

    def _gae(self, points: Sequence[TrajectoryPoint]) -> Tuple[List[float], List[float]]:
        gamma = self.config.gamma
        lam = self.config.gae_lambda
        gae = 0.0
        next_value = 0.0
        advantages: List[float] = []
        returns: List[float] = []
        for point in reversed(points):
            mask = 1.0 - point.done
            delta = point.reward + gamma * next_value * mask - point.value
            gae = delta + gamma * lam * mask * gae
            advantages.append(gae)
            returns.append(gae + point.value)
            next_value = point.value
        advantages.reverse()
        returns.reverse()
        return advantages, returns

    def build_training_data(self, env: Environment, trajectory: Trajectory) -> Dict[ModelId, TrainingData]:
        batches: Dict[ModelId, _ModelBatch] = {}
        for actor_id, points in trajectory.paths.items():
            model_id = env.model_id(actor_id)
            batch = batches.get(model_id)
            if batch is None:
                batch = batches[model_id] = _ModelBatch(action_space=env.action_space(actor_id))
            advantages, returns = self._gae(points)
            batch.advantages.extend(advantages)
            batch.returns.extend(returns)
            for point in points:
                batch.observations.extend(point.observation.data)
                batch.continuous_actions.extend(point.action.continuous)
                batch.discrete_actions.extend(point.action.discrete)
                batch.log_probs.append(point.log_prob)

        training_data: Dict[ModelId, TrainingData] = {}
        for model_id, batch in batches.items():
            size = len(batch.advantages)
            if size == 0:
                continue
            advantages = np.asarray(batch.advantages, dtype=np.float64).reshape(size, 1)
            adv_std = advantages.std(ddof=1 if size > 1 else 0) + _ADV_EPSILON
            space = batch.action_space
            training_data[model_id] = TrainingData(
                action_space=ActionSpace(list(space.discrete), list(space.continuous)),
                obs=_as_matrix(batch.observations, size, np.float64),
                discrete_actions=_as_matrix(batch.discrete_actions, size, np.int64),
                continuous_actions=_as_matrix(batch.continuous_actions, size, np.float64),
                log_probs=np.asarray(batch.log_probs, dtype=np.float64).reshape(size, 1),
                advantages=(advantages - advantages.mean()) / adv_std,
                returns=np.asarray(batch.returns, dtype=np.float64).reshape(size, 1),
            )
        return training_data

    # Optimization

    def update_policy(self, training_data: Dict[ModelId, TrainingData]) -> None:
        for model_id, data in training_data.items():
            model = self.model_manager.get_model_by_id(model_id)
            for _ in range(self.config.epochs_per_rollout):
                _, output_grads = self._evaluate(model, data)
                grads = self._backprop(model, data.obs, output_grads)
                self.optimizer.step(model.parameters(), grads, self.config.learning_rate)

    def compute_loss(self, model_id: ModelId, data: TrainingData) -> float:
        """Clipped surrogate loss plus weighted value loss minus entropy bonus."""
        loss, _ = self._evaluate(self.model_manager.get_model_by_id(model_id), data)
        return loss

    @staticmethod
    def _backprop(model: _PolicyModel, obs: np.ndarray, grads: _OutputGrads) -> List[np.ndarray]:
        if grads.discrete:
            return model.backward(obs, grads.mean, grads.log_std, grads.values, grad_discrete=grads.discrete)
        return model.backward(obs, grads.mean, grads.log_std, grads.values)

    def _evaluate(self, model: _PolicyModel, data: TrainingData) -> Tuple[float, _OutputGrads]:
        """Return the loss and its gradients with respect to the model outputs."""
        cfg = self.config
        obs = np.asarray(data.obs, dtype=np.float64)
        batch = obs.shape[0]
        logits = model.forward(obs)

        new_log_probs = np.zeros((batch, 1))
        entropy = np.zeros((batch, 1))

        heads = logits.discrete
        sizes = data.action_space.discrete
        if len(heads) != len(sizes):
            raise ValueError("Model discrete heads count does not match action space length")
        head_terms = []
        for head_idx, (head, size) in enumerate(zip(heads, sizes)):
            head = np.asarray(head, dtype=np.float64)
            if head.shape[1] != size:
                raise ValueError(f"Dimension mismatch in head {head_idx}")
            log_p = log_softmax(head, axis=1)
            p = np.exp(log_p)
            chosen = discrete_actions_to_one_hot(data.discrete_actions[:, head_idx : head_idx + 1], [size])
            new_log_probs += (log_p * chosen).sum(axis=1, keepdims=True)
            head_entropy = -(p * log_p).sum(axis=1, keepdims=True)
            entropy += head_entropy
            head_terms.append((p, log_p, chosen, head_entropy))

        mean = np.asarray(logits.continuous_mean, dtype=np.float64)
        log_std = np.asarray(logits.continuous_log_std, dtype=np.float64)
        has_continuous = mean.shape[1] > 0
        if has_continuous:
            actions = np.asarray(data.continuous_actions, dtype=np.float64)
            if actions.shape != mean.shape:
                raise ValueError(
                    f"Continuous actions of shape {actions.shape} do not match model output {mean.shape}"
                )
            var = np.exp(2.0 * log_std)
            diff = actions - mean
            new_log_probs += (-(diff**2) / (2.0 * var) - log_std - _HALF_LOG_2PI).sum(axis=1, keepdims=True)
            entropy += (log_std + 0.5 + _HALF_LOG_2PI).sum(axis=1, keepdims=True)

        entropy_loss = -cfg.entropy_coef * entropy.mean()

        advantages = np.asarray(data.advantages, dtype=np.float64)
        ratio = np.exp(new_log_probs - data.log_probs)
        eps = cfg.clip_ratio
        surr1 = ratio * advantages
        surr2 = np.clip(ratio, 1.0 - eps, 1.0 + eps) * advantages
        policy_loss = -np.minimum(surr1, surr2).mean()

        values = np.asarray(logits.values, dtype=np.float64)
        value_err = values - data.returns
        value_loss = (value_err**2).mean()

        loss = float(policy_loss + cfg.value_coef * value_loss + entropy_loss)

        inside = (ratio >= 1.0 - eps) & (ratio <= 1.0 + eps)
        grad_ratio = np.where(surr1 <= surr2, advantages, advantages * inside) * (-1.0 / batch)
        grad_log_prob = grad_ratio * ratio
        grad_entropy = -cfg.entropy_coef / batch

        grad_discrete = [
            grad_log_prob * (chosen - p) + grad_entropy * (-p * (log_p + head_entropy))
            for p, log_p, chosen, head_entropy in head_terms
        ]
        if has_continuous:
            grad_mean = grad_log_prob * diff / var
            grad_log_std = grad_log_prob * (diff**2 / var - 1.0) + grad_entropy
        else:
            grad_mean = np.zeros_like(mean)
            grad_log_std = np.zeros_like(log_std)
        grad_values = 2.0 * cfg.value_coef * value_err / value_err.size

        return loss, _OutputGrads(grad_mean, grad_log_std, grad_values, grad_discrete)