"""Tic-tac-toe exposed as a two-actor environment."""

from __future__ import annotations

import math
import random
from typing import Dict, List, Optional, Sequence

from sfrl.defs import Action, ActionSpace, ActorId, Environment, ModelId, Observation, StepResult
from sfrl.tictactoe import Mark, TicTacToe

_CELLS = 9


def _softmax(logits: Sequence[float]) -> List[float]:
    top = max(logits)
    exps = [math.exp(v - top) for v in logits]
    total = sum(exps)
    return [e / total for e in exps]


class TicTacToeEnv(Environment):
    """Actor 0 plays X, actor 1 plays O; only the player to move observes and acts."""

    def __init__(self, game: Optional[TicTacToe] = None, rng: Optional[random.Random] = None) -> None:
        self.game = game if game is not None else TicTacToe()
        self._rng = rng if rng is not None else random.Random()
        self._action_space = ActionSpace(discrete=[_CELLS], continuous=[])

    @property
    def actor_id(self) -> ActorId:
        return 0 if self.game.current_player() is Mark.X else 1

    def _observation(self) -> Observation:
        data = [0.0] * (2 * _CELLS)
        actor_mark = self.game.current_player()
        for i, mark in enumerate(self.game.board()):
            if mark is actor_mark:
                data[i] = 1.0
            else:
                data[i + _CELLS] = 1.0
        return Observation(data)

    def reset(self) -> Dict[ActorId, Observation]:
        self.game.reset()
        return self.observations()

    def observations(self) -> Dict[ActorId, Observation]:
        return {self.actor_id: self._observation()}

    def sample(self, actor_id: ActorId, logits: Sequence[float]) -> Dict[ActorId, Action]:
        """Pick a cell from the logits, skipping occupied cells."""
        threshold = self._rng.gauss(0.0, 1.0)
        acc = 0.0
        for index, prob in enumerate(_softmax(logits)):
            acc += prob
            if threshold < acc and self.game.is_empty(index):
                return {actor_id: Action(discrete=[index])}
        return {actor_id: Action(discrete=[len(logits) - 1])}

    def step(self, actions: Dict[ActorId, Action]) -> StepResult:
        current_player = self.game.current_player()
        actor_id = self.actor_id
        try:
            action = actions[actor_id]
        except KeyError:
            raise ValueError(f"No action for actor {actor_id}") from None
        if not action.discrete:
            raise ValueError("Incorrect action type")
        if not self.game.place(action.discrete[0]):
            raise ValueError("Incorrect action position")

        done = self.game.is_game_over()
        won = self.game.winner() is current_player
        return StepResult(
            observations=self.observations(),
            rewards={actor_id: 1.0 if won else 0.0},
            terminated={actor_id: done},
            truncated={actor_id: False},
        )

    def number_of_actors(self) -> int:
        return 2

    def model_id(self, actor_id: ActorId) -> ModelId:
        return actor_id

    def action_space(self, actor_id: ActorId) -> ActionSpace:
        return self._action_space