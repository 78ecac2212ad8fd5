"""Read-only navigation over a built ExplorerTree."""

import datetime as dt
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import chess

from .constants import DEFAULT_ORDER
from .game import play_move, split_movetext
from .position import PositionKey
from .stats import Rates, rates
from .tree import ExplorerNode, ExplorerTree, MovePath


@dataclass(frozen=True)
class ChildSummary:
    move: str
    visits: int
    win_rate: Optional[float]
    draw_rate: Optional[float]
    average_rating: Optional[float]

    def to_dict(self) -> Dict:
        return {
            "move": self.move,
            "visits": self.visits,
            "winRate": self.win_rate,
            "drawRate": self.draw_rate,
            "averageRating": self.average_rating,
        }


@dataclass(frozen=True)
class NodeView:
    """Statistics of one node; outcome counts are for the side that moved into it."""

    path: MovePath
    move: Optional[str]
    fen: str
    depth: int
    mover: chess.Color
    visits: int
    wins: int
    losses: int
    draws: int
    ended: int
    rates: Optional[Rates]
    average_rating: Optional[float]
    last_played: Optional[dt.date]
    children: Tuple[ChildSummary, ...]

    @property
    def outcomes(self) -> Dict[str, int]:
        white, black = (self.wins, self.losses) if self.mover == chess.WHITE else (self.losses, self.wins)
        return {"white-win": white, "black-win": black, "draw": self.draws}

    def to_dict(self) -> Dict:
        return {
            "path": list(self.path),
            "move": self.move,
            "fen": self.fen,
            "depth": self.depth,
            "mover": chess.COLOR_NAMES[self.mover],
            "visits": self.visits,
            "wins": self.wins,
            "losses": self.losses,
            "draws": self.draws,
            "ended": self.ended,
            "outcomes": self.outcomes,
            "winRate": self.rates.win if self.rates else None,
            "drawRate": self.rates.draw if self.rates else None,
            "lossRate": self.rates.loss if self.rates else None,
            "averageRating": self.average_rating,
            "lastPlayed": self.last_played.isoformat() if self.last_played else None,
            "children": [c.to_dict() for c in self.children],
        }


@dataclass(frozen=True)
class PathNotFound:
    """Requested line was never observed; ``prefix_length`` moves matched before it diverged."""

    path: Tuple[str, ...]
    prefix_length: int

    @property
    def move(self) -> Optional[str]:
        if self.prefix_length < len(self.path):
            return self.path[self.prefix_length]
        return None

    def __str__(self) -> str:
        return f"no games reach {' '.join(self.path)} (diverges at move {self.prefix_length + 1}: {self.move})"


QueryResult = Union[NodeView, PathNotFound]


def _rate_key(value: Optional[float]) -> float:
    return -1.0 if value is None else value


ORDERINGS: Dict[str, Callable[[ChildSummary], Tuple]] = {
    "visits": lambda c: (-c.visits, c.move),
    "win_rate": lambda c: (-_rate_key(c.win_rate), c.move),
    "draw_rate": lambda c: (-_rate_key(c.draw_rate), c.move),
    "rating": lambda c: (-_rate_key(c.average_rating), c.move),
    "move": lambda c: (c.move,),
}


def normalize_path(anchor: PositionKey, path: Union[str, Sequence[str]]) -> Tuple[Tuple[str, ...], List[str]]:
    """Resolve user moves to SAN from ``anchor``.

    Returns the requested tokens and the SAN of the moves that could be played
    before the first illegal or unreadable one.
    """
    tokens = tuple(split_movetext(path) if isinstance(path, str) else path)
    board = anchor.board()
    sans: List[str] = []
    for token in tokens:
        try:
            move = play_move(board, token)
        except ValueError:
            break
        sans.append(board.san(move))
        board.push(move)
    return tokens, sans


def summarize_child(node: ExplorerNode) -> ChildSummary:
    r = rates(node.stats)
    return ChildSummary(
        move=node.move,
        visits=node.stats.visits,
        win_rate=r.win if r else None,
        draw_rate=r.draw if r else None,
        average_rating=node.stats.average_rating,
    )


def view(tree: ExplorerTree, node: ExplorerNode, order_by: str = DEFAULT_ORDER, limit: Optional[int] = None) -> NodeView:
    if order_by not in ORDERINGS:
        raise ValueError(f"Unknown ordering {order_by!r}; choose from {', '.join(ORDERINGS)}")
    children = sorted(
        (summarize_child(tree.node(child_id)) for child_id in node.children.values()),
        key=ORDERINGS[order_by],
    )
    if limit is not None:
        children = children[:limit]
    stats = node.stats
    return NodeView(
        path=tree.path_to(node),
        move=node.move,
        fen=node.key.fen,
        depth=node.depth,
        mover=node.mover,
        visits=stats.visits,
        wins=stats.wins,
        losses=stats.losses,
        draws=stats.draws,
        ended=stats.ended,
        rates=rates(stats),
        average_rating=stats.average_rating,
        last_played=stats.last_played,
        children=tuple(children),
    )


def query(
    tree: ExplorerTree,
    path: Union[str, Sequence[str]] = (),
    order_by: str = DEFAULT_ORDER,
    limit: Optional[int] = None,
) -> QueryResult:
    """Statistics of the node at ``path``, or PathNotFound if no game went there."""
    if order_by not in ORDERINGS:
        raise ValueError(f"Unknown ordering {order_by!r}; choose from {', '.join(ORDERINGS)}")
    tokens, sans = normalize_path(tree.anchor, path)
    node, matched = tree.walk(sans)
    if matched < len(tokens):
        return PathNotFound(tokens, matched)
    return view(tree, node, order_by, limit)


class QueryEngine:
    """Stateless query API over one tree. Safe for concurrent readers once building is done."""

    def __init__(self, tree: ExplorerTree) -> None:
        self.tree = tree

    def query(self, path: Union[str, Sequence[str]] = (), order_by: str = DEFAULT_ORDER, limit: Optional[int] = None) -> QueryResult:
        return query(self.tree, path, order_by, limit)

    def branches(self, path: Union[str, Sequence[str]] = ()) -> List[str]:
        result = self.query(path)
        if isinstance(result, PathNotFound):
            return []
        return sorted(c.move for c in result.children)

    def top_lines(self, depth: int, limit: int = 10) -> List[Tuple[MovePath, int]]:
        """Most visited lines exactly ``depth`` plies deep."""
        lines = [(path, node.stats.visits) for path, node in self.tree.iter_nodes() if node.depth == depth]
        lines.sort(key=lambda item: (-item[1], item[0]))
        return lines[:limit]

    def common_positions(self, depth: int, limit: int = 5) -> List[Tuple[PositionKey, int]]:
        """Most frequent positions at ``depth`` plies, merging transpositions."""
        counts: Counter = Counter()
        for _, node in self.tree.iter_nodes():
            if node.depth == depth:
                counts[node.key] += node.stats.visits
        return sorted(counts.items(), key=lambda item: (-item[1], item[0].epd))[:limit]
