"""Multi-actor reinforcement learning: shared interfaces, a tic-tac-toe environment, NumPy networks and a PPO trainer."""

__version__ = "0.1.0"

__all__ = ["defs", "tictactoe", "tictactoe_env", "nn", "ppo"]