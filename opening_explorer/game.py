"""Normalized, validated game records."""

import datetime as dt
import enum
import re
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Sequence, Tuple, Union

import chess
import chess.pgn

from .constants import BLITZ_LIMIT, BULLET_LIMIT, DAILY_LIMIT, RAPID_LIMIT
from .errors import InvalidPosition, MalformedGame
from .position import STARTING_KEY, PositionKey, canonicalize

_COMMENT_RE = re.compile(r"\{[^}]*\}|;[^\n]*")
_VARIATION_RE = re.compile(r"\([^()]*\)")
_MOVE_NUMBER_RE = re.compile(r"^\d+\.+")
RESULT_TOKENS = frozenset({"1-0", "0-1", "1/2-1/2", "½-½", "*"})


class Outcome(enum.Enum):
    """Result of a game seen by one side."""

    WIN = "win"
    LOSS = "loss"
    DRAW = "draw"


class Result(enum.Enum):
    WHITE_WIN = "1-0"
    BLACK_WIN = "0-1"
    DRAW = "1/2-1/2"

    @classmethod
    def from_token(cls, token: str) -> "Result":
        value = token.strip().lower()
        if value in {"1-0", "w", "white", "white-win"}:
            return cls.WHITE_WIN
        if value in {"0-1", "b", "black", "black-win"}:
            return cls.BLACK_WIN
        if value in {"1/2-1/2", "½-½", "draw", "d", "="}:
            return cls.DRAW
        raise MalformedGame(f"Unknown or unfinished result: {token!r}")

    def for_color(self, color: chess.Color) -> Outcome:
        if self is Result.DRAW:
            return Outcome.DRAW
        winner = chess.WHITE if self is Result.WHITE_WIN else chess.BLACK
        return Outcome.WIN if winner == color else Outcome.LOSS


def time_control_label(tc: Optional[str]) -> Optional[str]:
    """Map a PGN TimeControl tag to bullet/blitz/rapid/classical/daily."""
    if not tc or tc in {"-", "?"}:
        return None
    if "/" in tc:
        return "daily"
    parts = tc.split("+")
    try:
        base = int(parts[0])
        inc = int(parts[1]) if len(parts) > 1 else 0
    except ValueError:
        return None

    total = base + 40 * inc
    if total >= DAILY_LIMIT:
        return "daily"
    if total < BULLET_LIMIT:
        return "bullet"
    if total < BLITZ_LIMIT:
        return "blitz"
    if total < RAPID_LIMIT:
        return "rapid"
    return "classical"


def parse_rating(value: Union[str, int, None]) -> Optional[int]:
    if value is None:
        return None
    try:
        rating = int(value)
    except (TypeError, ValueError):
        return None
    return rating if rating > 0 else None


def _parse_result(value: Optional[str]) -> Optional[Result]:
    if not value:
        return None
    try:
        return Result.from_token(value)
    except MalformedGame:
        return None


def parse_date(value: Optional[str]) -> Optional[dt.date]:
    if not value:
        return None
    for fmt in ("%Y.%m.%d", "%Y-%m-%d"):
        try:
            return dt.datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


@dataclass(frozen=True)
class GameMetadata:
    result: Optional[Result] = None
    white_rating: Optional[int] = None
    black_rating: Optional[int] = None
    time_control: Optional[str] = None
    end_reason: Optional[str] = None
    timestamp: Optional[dt.date] = None
    white: Optional[str] = None
    black: Optional[str] = None
    player_color: Optional[chess.Color] = None
    game_id: Optional[str] = None

    def rating_for(self, color: chess.Color) -> Optional[int]:
        return self.white_rating if color == chess.WHITE else self.black_rating

    @property
    def player_rating(self) -> Optional[int]:
        if self.player_color is None:
            return None
        return self.rating_for(self.player_color)

    @property
    def opponent_rating(self) -> Optional[int]:
        if self.player_color is None:
            return None
        return self.rating_for(not self.player_color)

    @property
    def opponent_name(self) -> Optional[str]:
        if self.player_color is None:
            return None
        return self.black if self.player_color == chess.WHITE else self.white


def metadata_from_headers(headers: Mapping[str, str], player: Optional[str] = None) -> GameMetadata:
    """Build GameMetadata from PGN headers. ``player`` marks the collection owner."""
    white = headers.get("White") or None
    black = headers.get("Black") or None
    player_color: Optional[chess.Color] = None
    if player:
        name = player.strip().lower()
        if white and white.lower() == name:
            player_color = chess.WHITE
        elif black and black.lower() == name:
            player_color = chess.BLACK

    date_tag = headers.get("EndDate") or headers.get("UTCDate") or headers.get("Date")
    url = headers.get("Link") or headers.get("Site", "")
    game_id = url.rstrip("/").split("/")[-1] if url.startswith("http") else None

    time_class = headers.get("TimeClass")
    return GameMetadata(
        result=_parse_result(headers.get("Result")),
        white_rating=parse_rating(headers.get("WhiteElo")),
        black_rating=parse_rating(headers.get("BlackElo")),
        time_control=time_class.lower() if time_class else time_control_label(headers.get("TimeControl")),
        end_reason=headers.get("Termination") or None,
        timestamp=parse_date(date_tag),
        white=white,
        black=black,
        player_color=player_color,
        game_id=game_id,
    )


@dataclass(frozen=True)
class Ply:
    san: str
    uci: str
    key: PositionKey


@dataclass(frozen=True)
class GameRecord:
    """A fully validated game: start position, plies and metadata."""

    start: PositionKey
    plies: Tuple[Ply, ...]
    metadata: GameMetadata

    def __post_init__(self) -> None:
        if self.metadata.result is None:
            raise MalformedGame("Game has no final result")

    @property
    def moves(self) -> Tuple[str, ...]:
        return tuple(p.san for p in self.plies)

    @property
    def result(self) -> Result:
        return self.metadata.result

    @property
    def final_key(self) -> PositionKey:
        return self.plies[-1].key if self.plies else self.start

    def mover(self, index: int) -> chess.Color:
        """Color that played ply ``index`` (0-based)."""
        return self.start.turn if index % 2 == 0 else not self.start.turn

    def __len__(self) -> int:
        return len(self.plies)


def split_movetext(text: str) -> List[str]:
    """Strip comments, variations, NAGs, move numbers and result tokens."""
    text = _COMMENT_RE.sub(" ", text)
    previous = None
    while previous != text:
        previous, text = text, _VARIATION_RE.sub(" ", text)

    tokens: List[str] = []
    for raw in text.split():
        token = _MOVE_NUMBER_RE.sub("", raw).rstrip("!?")
        if not token or token.startswith("$") or token in RESULT_TOKENS:
            continue
        tokens.append(token)
    return tokens


def play_move(board: chess.Board, token: str) -> chess.Move:
    """Resolve a SAN or UCI token to a legal move on ``board``; raises ValueError."""
    try:
        move = board.parse_san(token)
    except ValueError:
        move = chess.Move.from_uci(token)
        if move not in board.legal_moves:
            raise ValueError(f"illegal move {token!r} in {board.fen()}")
    if not move:
        raise ValueError("null moves are not allowed")
    return move


def parse(
    move_text: Union[str, Sequence[str]],
    metadata: GameMetadata,
    start: Optional[PositionKey] = None,
) -> GameRecord:
    """Validate ``move_text`` from ``start`` and return a GameRecord.

    A single illegal move invalidates the whole game.
    """
    if metadata.result is None:
        raise MalformedGame("Game has no final result")
    start = start or STARTING_KEY
    tokens = split_movetext(move_text) if isinstance(move_text, str) else list(move_text)
    board = start.board()
    plies: List[Ply] = []
    for ply, token in enumerate(tokens, 1):
        try:
            move = play_move(board, token)
        except ValueError as exc:
            raise MalformedGame(f"Illegal move {token!r} at ply {ply}: {exc}", ply=ply, token=token) from exc
        san = board.san(move)
        board.push(move)
        plies.append(Ply(san, move.uci(), canonicalize(board)))
    return GameRecord(start, tuple(plies), metadata)


def _start_key(fen: Optional[str]) -> Optional[PositionKey]:
    if not fen:
        return None
    try:
        return PositionKey.from_fen(fen)
    except InvalidPosition as exc:
        raise MalformedGame(f"Invalid start position: {exc}") from exc


@dataclass(frozen=True)
class RawGame:
    """Unvalidated game as delivered by a source: move text plus metadata."""

    movetext: Union[str, Tuple[str, ...]]
    metadata: GameMetadata
    start_fen: Optional[str] = None
    error: Optional[str] = field(default=None, compare=False)

    def parse(self) -> GameRecord:
        if self.error:
            raise MalformedGame(self.error)
        return parse(self.movetext, self.metadata, _start_key(self.start_fen))


def from_pgn_game(game: chess.pgn.Game, player: Optional[str] = None) -> GameRecord:
    """Build a GameRecord from a game read by ``chess.pgn.read_game``."""
    if game.errors:
        raise MalformedGame(f"PGN error: {game.errors[0]}")
    headers = game.headers
    metadata = metadata_from_headers(headers, player)
    start = _start_key(headers.get("FEN")) if headers.get("FEN") else None
    return parse([m.uci() for m in game.mainline_moves()], metadata, start)

