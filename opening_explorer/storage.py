from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterator, List, Optional

import chess
import orjson

from .constants import SCHEMA_VERSION, SNAPSHOT_VERSION
from .errors import SnapshotError, TreeInvariantError
from .game import GameMetadata, RawGame, Result, parse_date, parse_rating
from .tree import ExplorerTree

logger = logging.getLogger(__name__)


def load_store(path: Path) -> Dict:
    if not path.exists():
        return {"version": SCHEMA_VERSION, "games": []}

    data = orjson.loads(path.read_bytes())
    if "version" not in data:
        data["version"] = SCHEMA_VERSION
    if "games" not in data:
        data["games"] = []
    return data


def save_store(store: Dict, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(orjson.dumps(store, option=orjson.OPT_INDENT_2))


def load_games(path: Path) -> List[Dict]:
    store = load_store(path)
    return store.get("games", [])


def raw_game_from_entry(entry: Dict, player: Optional[str] = None) -> RawGame:
    """Convert one stored game (results and ratings seen by ``color``) to a RawGame."""
    color_name = entry.get("color")
    player_color: Optional[chess.Color] = None
    if color_name in ("white", "black"):
        player_color = color_name == "white"

    try:
        result: Optional[Result] = Result.from_token(entry.get("result", "*"))
    except ValueError:
        result = None
    if result is not None and player_color == chess.BLACK and result is not Result.DRAW:
        result = Result.BLACK_WIN if result is Result.WHITE_WIN else Result.WHITE_WIN

    my_rating = parse_rating(entry.get("my_rating"))
    opp_rating = parse_rating(entry.get("opponent_rating"))
    opponent = entry.get("opponent") or None
    if player_color == chess.WHITE:
        white_rating, black_rating, white, black = my_rating, opp_rating, player, opponent
    elif player_color == chess.BLACK:
        white_rating, black_rating, white, black = opp_rating, my_rating, opponent, player
    else:
        white_rating = black_rating = None
        white = black = None

    metadata = GameMetadata(
        result=result,
        white_rating=white_rating,
        black_rating=black_rating,
        time_control=entry.get("time_control") or None,
        end_reason=entry.get("termination") or None,
        timestamp=parse_date(entry.get("date")),
        white=white,
        black=black,
        player_color=player_color,
        game_id=entry.get("game_id") or None,
    )
    return RawGame(tuple(entry.get("moves") or ()), metadata, entry.get("fen"))


def raw_games_from_store(path: Path, player: Optional[str] = None) -> Iterator[RawGame]:
    for entry in load_games(path):
        yield raw_game_from_entry(entry, player or path.stem)


def save_tree(tree: ExplorerTree, path: Path) -> None:
    """Write a tree snapshot; node identity is the move path from the anchor."""
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {"version": SNAPSHOT_VERSION, "tree": tree.to_dict()}
    path.write_bytes(orjson.dumps(payload))
    logger.info("Saved tree snapshot with %d nodes to %s", len(tree), path)


def load_tree(path: Path) -> ExplorerTree:
    try:
        payload = orjson.loads(path.read_bytes())
    except orjson.JSONDecodeError as exc:
        raise SnapshotError(f"{path} is not a valid snapshot: {exc}") from exc
    version = payload.get("version") if isinstance(payload, dict) else None
    if version != SNAPSHOT_VERSION:
        raise SnapshotError(f"{path} has unsupported snapshot version {version!r}")
    try:
        tree = ExplorerTree.from_dict(payload["tree"])
    except (KeyError, TypeError, ValueError, TreeInvariantError) as exc:
        raise SnapshotError(f"{path} is corrupt: {exc}") from exc
    logger.info("Loaded tree snapshot with %d nodes from %s", len(tree), path)
    return tree
