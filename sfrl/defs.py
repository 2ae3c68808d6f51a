"""Core data types and interfaces shared by environments, models and trainers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Generic, List, Tuple, TypeVar

ActorId = int
ModelId = int


@dataclass
class Observation:
    """Flat feature vector seen by one actor."""

    data: List[float] = field(default_factory=list)


@dataclass
class ActionSpace:
    """Sizes of the discrete heads and (min, max) bounds of continuous outputs."""

    discrete: List[int] = field(default_factory=list)
    continuous: List[Tuple[float, float]] = field(default_factory=list)


@dataclass
class Action:
    """Chosen discrete indices and continuous values for one actor."""

    discrete: List[int] = field(default_factory=list)
    continuous: List[float] = field(default_factory=list)


@dataclass
class StepResult:
    """Outcome of one environment step, keyed by actor id."""

    observations: Dict[ActorId, Observation] = field(default_factory=dict)
    rewards: Dict[ActorId, float] = field(default_factory=dict)
    terminated: Dict[ActorId, bool] = field(default_factory=dict)
    truncated: Dict[ActorId, bool] = field(default_factory=dict)


class Environment(ABC):
    """Maps the simulated world onto observations, actions and rewards."""

    @abstractmethod
    def reset(self) -> Dict[ActorId, Observation]:
        """Restart the episode and return the first observations."""

    @abstractmethod
    def step(self, actions: Dict[ActorId, Action]) -> StepResult:
        """Apply the actions and return the next observations and rewards."""

    @abstractmethod
    def model_id(self, actor_id: ActorId) -> ModelId:
        """Return the id of the model that drives the given actor."""

    @abstractmethod
    def action_space(self, actor_id: ActorId) -> ActionSpace:
        """Return the action space of the given actor."""


class Model(ABC):
    """A policy model identified by an integer id."""

    @abstractmethod
    def model_id(self) -> ModelId:
        """Return this model's id."""


M = TypeVar("M", bound=Model)


class ModelManager(ABC, Generic[M]):
    """Holds models and looks them up by id."""

    @abstractmethod
    def get_model_by_id(self, model_id: ModelId) -> M:
        """Return the model registered under the id."""

    @abstractmethod
    def register(self, model: M) -> None:
        """Add a model to the manager."""