"""Minimal tic-tac-toe mechanics: board state and win/draw checks."""

from __future__ import annotations

from enum import Enum
from typing import Optional, Tuple

_LINES = (
    (0, 1, 2),
    (3, 4, 5),
    (6, 7, 8),
    (0, 3, 6),
    (1, 4, 7),
    (2, 5, 8),
    (0, 4, 8),
    (2, 4, 6),
)


class Mark(Enum):
    EMPTY = 0
    X = 1
    O = 2


class TicTacToe:
    """A 3x3 board where X and O alternate, X moving first."""

    def __init__(self) -> None:
        self._board = [Mark.EMPTY] * 9
        self._moves_made = 0

    def reset(self) -> None:
        self._board = [Mark.EMPTY] * 9
        self._moves_made = 0

    def place(self, idx: int) -> bool:
        """Place the current player's mark at idx (0..8); return whether it was placed."""
        if not 0 <= idx < 9:
            return False
        if self._board[idx] is not Mark.EMPTY:
            return False
        self._board[idx] = self.current_player()
        self._moves_made += 1
        return True

    def is_empty(self, index: int) -> bool:
        if not 0 <= index < 9:
            raise IndexError(f"board index out of range: {index}")
        return self._board[index] is Mark.EMPTY

    def winner(self) -> Optional[Mark]:
        """Return the mark holding a full line, or None."""
        for a, b, c in _LINES:
            mark = self._board[a]
            if mark is not Mark.EMPTY and mark is self._board[b] and mark is self._board[c]:
                return mark
        return None

    def is_game_over(self) -> bool:
        return self._moves_made >= 9 or self.winner() is not None

    def board(self) -> Tuple[Mark, ...]:
        return tuple(self._board)

    def current_player(self) -> Mark:
        return Mark.X if self._moves_made % 2 == 0 else Mark.O