# sfrl

A small reinforcement learning toolkit for environments with several actors,
built on NumPy.

- `sfrl.defs`: shared data types (`Observation`, `Action`, `ActionSpace`,
  `StepResult`) and the abstract `Environment`, `Model` and `ModelManager`
  interfaces.
- `sfrl.tictactoe`: a mechanics-only tic-tac-toe engine (`TicTacToe`, `Mark`).
- `sfrl.tictactoe_env`: `TicTacToeEnv`, which exposes the engine as a
  two-actor environment.
- `sfrl.nn`: `softmax`, `log_softmax`, a `Linear` layer, `PpoNet` (a shared
  hidden layer with Gaussian actor heads and a critic head), an `Adam`
  optimizer and `ModelRegistry`.
- `sfrl.ppo`: `PPOConfig` and `PPOTrainer` (rollout, generalised advantage
  estimation and a clipped-surrogate update), plus `Trajectory`,
  `TrajectoryPoint`, `TrainingData` and `discrete_actions_to_one_hot`.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## The tic-tac-toe engine

```python
from sfrl.tictactoe import TicTacToe, Mark

game = TicTacToe()
for idx in (0, 3, 1, 4, 2):
    assert game.place(idx)

assert game.winner() is Mark.X
assert game.is_game_over()
```

X moves first and players alternate (`current_player()`). `place` returns
`False` for a cell outside 0..8 or one already taken. `board()` returns the
nine marks as a tuple; `reset()` clears it.

## The tic-tac-toe environment

`TicTacToeEnv` maps X to actor 0 and O to actor 1; only the player to move
receives an observation. An observation has 18 values: the first nine are 1.0
where the mover has a mark, the last nine are 1.0 for every other cell (empty
or the opponent's). Each actor has the action space `ActionSpace(discrete=[9])`
and `model_id(actor_id)` returns the actor id.

```python
import random
from sfrl.tictactoe_env import TicTacToeEnv

env = TicTacToeEnv(rng=random.Random(0))
obs = env.reset()                      # {0: Observation([...18 values...])}
actions = env.sample(0, [0.0] * 9)     # {0: Action(discrete=[cell])}
result = env.step(actions)
print(result.rewards, result.terminated, result.observations)
```

`sample` walks the softmax of the logits against a normally distributed
threshold and picks the first empty cell it reaches, falling back to the last
cell. `step` raises `ValueError` when the actor to move has no action, the
action has no discrete value, or the cell cannot be taken. The reward is 1.0
for the move that wins, otherwise 0.0.

## Training with PPO

`PPOTrainer(config, model_manager, optimizer=None, rng=None)` drives models
looked up by id from a `ModelManager` such as `ModelRegistry`. Each
`train_step(env)` resets the environment, takes `batch_size` steps, computes
advantages and returns per model with GAE (advantages are normalised), and
runs `epochs_per_rollout` Adam updates over the collected data.
`compute_loss(model_id, data)` returns the loss for a `TrainingData` batch.

```python
import numpy as np
from sfrl.defs import ActionSpace, Environment, Observation, StepResult
from sfrl.nn import ModelRegistry, PpoNet
from sfrl.ppo import PPOConfig, PPOTrainer


class Target(Environment):
    """One actor, rewarded for choosing a value close to 0.5."""

    def __init__(self):
        self.space = ActionSpace(continuous=[(-1.0, 1.0)])

    def reset(self):
        return {0: Observation([0.5])}

    def step(self, actions):
        value = actions[0].continuous[0]
        return StepResult(
            observations={0: Observation([0.5])},
            rewards={0: -abs(value - 0.5)},
        )

    def model_id(self, actor_id):
        return 0

    def action_space(self, actor_id):
        return self.space


rng = np.random.default_rng(0)
registry = ModelRegistry([PpoNet(0, input_dim=1, hidden_dim=16, action_dim=1, rng=rng)])
config = PPOConfig(
    clip_ratio=0.2, gamma=0.99, gae_lambda=0.95, value_coef=0.5,
    entropy_coef=0.01, learning_rate=1e-3, batch_size=32,
    max_steps=1000, epochs_per_rollout=4,
)
trainer = PPOTrainer(config, registry, rng=rng)
trainer.train_step(Target())
```

Sampled continuous actions are clamped to the `(min, max)` bounds of the
actor's action space. `max_steps` is stored in the configuration but not
used by the trainer.

A model used by the trainer needs `model_id()`, `forward(inputs)` returning
`ModelLogits`, `parameters()` and `backward(inputs, grad_mean, grad_log_std,
grad_values)`; a model with discrete heads (`ModelLogits.discrete`) must also
accept a `grad_discrete` keyword in `backward`.

## What the package does not do

- There is no command-line program; everything is used from Python.
- `PpoNet` has only continuous actor heads, so it cannot drive
  `TicTacToeEnv`, whose actions are discrete. A network with discrete heads
  has to be supplied by the user.
- The trainer does not reset an environment when an episode ends during a
  rollout, and `TicTacToeEnv` does not reset itself either.
- Models, optimizer state and training progress are not saved or loaded.