"""Small numpy neural-network pieces used by the PPO trainer: layers, a policy net, Adam."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from sfrl.defs import Model, ModelId, ModelManager


def softmax(x: np.ndarray, axis: int = -1) -> np.ndarray:
    """Numerically stable softmax along an axis."""
    x = np.asarray(x, dtype=np.float64)
    shifted = x - np.max(x, axis=axis, keepdims=True)
    exps = np.exp(shifted)
    return exps / np.sum(exps, axis=axis, keepdims=True)


def log_softmax(x: np.ndarray, axis: int = -1) -> np.ndarray:
    """Numerically stable log-softmax along an axis."""
    x = np.asarray(x, dtype=np.float64)
    shifted = x - np.max(x, axis=axis, keepdims=True)
    return shifted - np.log(np.sum(np.exp(shifted), axis=axis, keepdims=True))


@dataclass
class ModelLogits:
    """Raw outputs of a PPO model for a batch of observations."""

    continuous_mean: np.ndarray
    continuous_log_std: np.ndarray
    values: np.ndarray
    discrete: List[np.ndarray] = field(default_factory=list)


class Linear:
    """Fully connected layer computing ``x @ weight + bias``."""

    def __init__(self, in_dim: int, out_dim: int, rng: Optional[np.random.Generator] = None) -> None:
        if in_dim <= 0 or out_dim <= 0:
            raise ValueError(f"Layer dimensions must be positive, got {in_dim}x{out_dim}")
        rng = rng if rng is not None else np.random.default_rng()
        bound = 1.0 / np.sqrt(in_dim)
        self.weight = rng.uniform(-bound, bound, size=(in_dim, out_dim))
        self.bias = rng.uniform(-bound, bound, size=(out_dim,))

    @property
    def in_dim(self) -> int:
        return self.weight.shape[0]

    @property
    def out_dim(self) -> int:
        return self.weight.shape[1]

    def forward(self, x: np.ndarray) -> np.ndarray:
        x = np.asarray(x, dtype=np.float64)
        if x.ndim != 2 or x.shape[1] != self.in_dim:
            raise ValueError(f"Expected input of shape [batch, {self.in_dim}], got {x.shape}")
        return x @ self.weight + self.bias

    def backward(self, x: np.ndarray, grad_out: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Return gradients with respect to (input, weight, bias)."""
        x = np.asarray(x, dtype=np.float64)
        grad_out = np.asarray(grad_out, dtype=np.float64)
        if grad_out.shape != (x.shape[0], self.out_dim):
            raise ValueError(
                f"Expected gradient of shape {(x.shape[0], self.out_dim)}, got {grad_out.shape}"
            )
        grad_x = grad_out @ self.weight.T
        grad_w = x.T @ grad_out
        grad_b = grad_out.sum(axis=0)
        return grad_x, grad_w, grad_b


class PpoNet(Model):
    """Shared hidden layer with Gaussian actor heads (mean, log std) and a critic head."""

    def __init__(
        self,
        model_id: ModelId,
        input_dim: int,
        hidden_dim: int,
        action_dim: int,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        rng = rng if rng is not None else np.random.default_rng()
        self._id = model_id
        self.input_dim = input_dim
        self.fc1 = Linear(input_dim, hidden_dim, rng)
        self.actor_mean = Linear(hidden_dim, action_dim, rng)
        self.actor_log_std = Linear(hidden_dim, action_dim, rng)
        self.critic = Linear(hidden_dim, 1, rng)

    def model_id(self) -> ModelId:
        return self._id

    def _layers(self) -> Tuple[Linear, Linear, Linear, Linear]:
        return self.fc1, self.actor_mean, self.actor_log_std, self.critic

    def forward(self, inputs: np.ndarray) -> ModelLogits:
        hidden = np.maximum(self.fc1.forward(inputs), 0.0)
        return ModelLogits(
            continuous_mean=self.actor_mean.forward(hidden),
            continuous_log_std=self.actor_log_std.forward(hidden),
            values=self.critic.forward(hidden),
        )

    def backward(
        self,
        inputs: np.ndarray,
        grad_mean: np.ndarray,
        grad_log_std: np.ndarray,
        grad_values: np.ndarray,
    ) -> List[np.ndarray]:
        """Return parameter gradients, in the order of ``parameters()``."""
        inputs = np.asarray(inputs, dtype=np.float64)
        pre = self.fc1.forward(inputs)
        hidden = np.maximum(pre, 0.0)

        gh_mean, gw_mean, gb_mean = self.actor_mean.backward(hidden, grad_mean)
        gh_std, gw_std, gb_std = self.actor_log_std.backward(hidden, grad_log_std)
        gh_val, gw_val, gb_val = self.critic.backward(hidden, grad_values)

        grad_pre = (gh_mean + gh_std + gh_val) * (pre > 0.0)
        _, gw_fc1, gb_fc1 = self.fc1.backward(inputs, grad_pre)
        return [gw_fc1, gb_fc1, gw_mean, gb_mean, gw_std, gb_std, gw_val, gb_val]

    def parameters(self) -> List[np.ndarray]:
        """Parameter arrays, updated in place by optimizers."""
        params: List[np.ndarray] = []
        for layer in self._layers():
            params.extend((layer.weight, layer.bias))
        return params


class Adam:
    """Adam optimizer updating parameter arrays in place."""

    def __init__(self, beta1: float = 0.9, beta2: float = 0.999, epsilon: float = 1e-5) -> None:
        self.beta1 = beta1
        self.beta2 = beta2
        self.epsilon = epsilon
        self._moments: Dict[int, Tuple[np.ndarray, np.ndarray, int]] = {}

    def step(self, params: Sequence[np.ndarray], grads: Sequence[np.ndarray], learning_rate: float) -> None:
        if len(params) != len(grads):
            raise ValueError(f"Got {len(params)} parameters but {len(grads)} gradients")
        for param, grad in zip(params, grads):
            grad = np.asarray(grad, dtype=np.float64)
            if param.shape != grad.shape:
                raise ValueError(f"Gradient shape {grad.shape} does not match parameter {param.shape}")
            key = id(param)
            m, v, t = self._moments.get(key, (np.zeros_like(param), np.zeros_like(param), 0))
            t += 1
            m = self.beta1 * m + (1.0 - self.beta1) * grad
            v = self.beta2 * v + (1.0 - self.beta2) * grad * grad
            self._moments[key] = (m, v, t)
            m_hat = m / (1.0 - self.beta1**t)
            v_hat = v / (1.0 - self.beta2**t)
            param -= learning_rate * m_hat / (np.sqrt(v_hat) + self.epsilon)


class ModelRegistry(ModelManager[PpoNet]):
    """Models keyed by their own ids."""

    def __init__(self, models: Sequence[PpoNet] = ()) -> None:
        self._models: Dict[ModelId, PpoNet] = {}
        for model in models:
            self.register(model)

    def get_model_by_id(self, model_id: ModelId) -> PpoNet:
        try:
            return self._models[model_id]
        except KeyError:
            raise KeyError(f"No model registered with id {model_id}") from None

    def register(self, model: PpoNet) -> None:
        self._models[model.model_id()] = model

    def __len__(self) -> int:
        return len(self._models)

    def __iter__(self) -> Iterator[PpoNet]:
        return iter(self._models.values())