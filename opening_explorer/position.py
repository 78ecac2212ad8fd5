"""Canonical, transposition-aware position identity."""

from dataclasses import dataclass, field

import chess
import chess.polyglot

from .errors import InvalidPosition


@dataclass(frozen=True, order=True)
class PositionKey:
    """Placement, side to move, castling rights and legal en passant square.

    ``epd`` is the canonical text form. Castling rights are cleaned and the en
    passant square is only kept when a legal capture exists, so two move
    orders reaching the same position always produce equal keys.
    """

    epd: str
    zobrist: int = field(compare=False)

    @classmethod
    def from_fen(cls, fen: str) -> "PositionKey":
        try:
            board = chess.Board(fen.strip())
        except ValueError as exc:
            raise InvalidPosition(f"Unparsable FEN {fen!r}: {exc}") from exc
        return canonicalize(board)

    @property
    def turn(self) -> chess.Color:
        return self.epd.split(" ")[1] == "w"

    @property
    def fen(self) -> str:
        return f"{self.epd} 0 1"

    def board(self) -> chess.Board:
        return chess.Board(self.fen)

    def __str__(self) -> str:
        return self.epd


def canonicalize(board: chess.Board) -> PositionKey:
    """Return the PositionKey of ``board``; inconsistent boards raise InvalidPosition."""
    if not board.is_valid():
        raise InvalidPosition(f"Invalid board {board.fen()!r}: {board.status()!r}")
    return PositionKey(board.epd(), chess.polyglot.zobrist_hash(board))


STARTING_KEY = canonicalize(chess.Board())
