"""Move tree of explored games.

The tree is a strict ownership tree stored as an arena: nodes live in a list
and refer to each other by integer id. Children are keyed by the SAN move
played from the parent, so transpositions appear as separate nodes with their
own statistics.
"""

import concurrent.futures
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import chess
from tqdm import tqdm

from .errors import MalformedGame, TreeInvariantError
from .game import GameRecord, RawGame
from .position import STARTING_KEY, PositionKey
from .sampling import SamplingFilter
from .stats import NodeStats, StatsAggregator

logger = logging.getLogger(__name__)

GameInput = Union[GameRecord, RawGame]
MovePath = Tuple[str, ...]


@dataclass
class ExplorerNode:
    id: int
    key: PositionKey
    move: Optional[str] = None
    parent: Optional[int] = None
    depth: int = 0
    stats: NodeStats = field(default_factory=NodeStats)
    children: Dict[str, int] = field(default_factory=dict)

    @property
    def mover(self) -> chess.Color:
        """Side that moved into this position."""
        return not self.key.turn

    def is_leaf(self) -> bool:
        return not self.children


@dataclass
class SkippedGame:
    index: int
    game_id: Optional[str]
    reason: str

    @property
    def label(self) -> str:
        return self.game_id or f"#{self.index + 1}"


@dataclass
class InsertReport:
    inserted: int = 0
    skipped: int = 0
    unreached: int = 0
    excluded: int = 0
    reasons: List[SkippedGame] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.inserted + self.skipped + self.unreached + self.excluded

    def combine(self, other: "InsertReport") -> "InsertReport":
        return InsertReport(
            inserted=self.inserted + other.inserted,
            skipped=self.skipped + other.skipped,
            unreached=self.unreached + other.unreached,
            excluded=self.excluded + other.excluded,
            reasons=sorted(self.reasons + other.reasons, key=lambda s: s.index),
        )

    def summary(self, limit: int = 5) -> str:
        text = f"sampled {self.inserted} of {self.total} games"
        extra = []
        if self.excluded:
            extra.append(f"{self.excluded} filtered out")
        if self.unreached:
            extra.append(f"{self.unreached} never reach the anchor")
        if self.skipped:
            shown = "; ".join(f"{s.label}: {s.reason}" for s in self.reasons[:limit])
            more = f" (+{len(self.reasons) - limit} more)" if len(self.reasons) > limit else ""
            extra.append(f"{self.skipped} skipped: {shown}{more}")
        return ", ".join([text] + extra)


class ExplorerTree:
    """Tree of positions reachable from an anchor, with per-node statistics."""

    def __init__(self, anchor: Optional[PositionKey] = None, max_plies: Optional[int] = None) -> None:
        if max_plies is not None and max_plies < 0:
            raise ValueError("max_plies must be non-negative")
        self.anchor = anchor or STARTING_KEY
        self.max_plies = max_plies
        self._nodes: List[ExplorerNode] = [ExplorerNode(0, self.anchor)]

    @property
    def root(self) -> ExplorerNode:
        return self._nodes[0]

    @property
    def games(self) -> int:
        return self.root.stats.visits

    def node(self, node_id: int) -> ExplorerNode:
        return self._nodes[node_id]

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"ExplorerTree(anchor={self.anchor.epd!r}, nodes={len(self)}, games={self.games})"

    def child(self, node: ExplorerNode, move: str) -> Optional[ExplorerNode]:
        child_id = node.children.get(move)
        return None if child_id is None else self._nodes[child_id]

    def _add_child(self, parent: ExplorerNode, move: str, key: PositionKey) -> ExplorerNode:
        if move in parent.children:
            raise TreeInvariantError(f"Duplicate child {move!r} under node {parent.id}")
        node = ExplorerNode(len(self._nodes), key, move, parent.id, parent.depth + 1)
        self._nodes.append(node)
        parent.children[move] = node.id
        logger.debug("New node %d: %s at depth %d", node.id, move, node.depth)
        return node

    def _entry(self, game: GameRecord) -> Optional[int]:
        """Index of the first ply played from the anchor, or None if it is never reached."""
        if game.start == self.anchor:
            return 0
        for idx, ply in enumerate(game.plies):
            if ply.key == self.anchor:
                return idx + 1
        return None

    def insert(self, game: GameRecord) -> bool:
        """Add one validated game. Returns False if the game never reaches the anchor."""
        entry = self._entry(game)
        if entry is None:
            return False
        plies = game.plies[entry:]
        if self.max_plies is not None:
            plies = plies[: self.max_plies]

        # Every update is worked out and the existing prefix checked before creating anything.
        meta = game.metadata
        movers = [not self.anchor.turn] + [not ply.key.turn for ply in plies]
        updates = [(game.result.for_color(mover), meta.rating_for(mover)) for mover in movers]
        node = self.root
        matched = 0
        for ply in plies:
            child = self.child(node, ply.san)
            if child is None:
                break
            if child.key != ply.key:
                raise TreeInvariantError(
                    f"Move {ply.san!r} under node {node.id} leads to {child.key} and {ply.key}"
                )
            node = child
            matched += 1
        for ply in plies[matched:]:
            node = self._add_child(node, ply.san, ply.key)

        node = self.root
        path_nodes = [node]
        for ply in plies:
            node = self._nodes[node.children[ply.san]]
            path_nodes.append(node)
        last = len(path_nodes) - 1
        for depth, (visited, (outcome, rating)) in enumerate(zip(path_nodes, updates)):
            StatsAggregator.update(visited.stats, outcome, rating, ended=depth == last, played=meta.timestamp)
        return True

    def _insert_labelled(self, items: Iterable[Tuple[int, GameInput]], report: InsertReport) -> None:
        for index, item in items:
            game_id = item.metadata.game_id
            try:
                record = item.parse() if isinstance(item, RawGame) else item
                reached = self.insert(record)
            except MalformedGame as exc:
                logger.warning("Skipping game %s: %s", game_id or index + 1, exc)
                report.skipped += 1
                report.reasons.append(SkippedGame(index, game_id, str(exc)))
                continue
            except Exception as exc:
                logger.exception("Unexpected error inserting game %s", game_id or index + 1)
                report.skipped += 1
                report.reasons.append(SkippedGame(index, game_id, f"{type(exc).__name__}: {exc}"))
                continue
            if reached:
                report.inserted += 1
            else:
                report.unreached += 1

    def insert_all(self, games: Iterable[GameInput], *, progress: bool = False) -> InsertReport:
        """Insert every game, skipping and counting the ones that fail."""
        report = InsertReport()
        items = enumerate(tqdm(games, disable=not progress, desc="Building tree", unit="game"))
        self._insert_labelled(items, report)
        logger.info("Inserted games: %s", report.summary())
        return report

    def merge(self, other: "ExplorerTree") -> "ExplorerTree":
        """Fold ``other`` into this tree by combining same-move children."""
        if other.anchor != self.anchor:
            raise ValueError(f"Cannot merge trees anchored at {other.anchor} and {self.anchor}")
        if other.max_plies != self.max_plies:
            raise ValueError("Cannot merge trees built with different max_plies")
        stack = [(self.root, other.root)]
        while stack:
            mine, theirs = stack.pop()
            StatsAggregator.merge_into(mine.stats, theirs.stats)
            for move, their_id in theirs.children.items():
                their_child = other._nodes[their_id]
                my_child = self.child(mine, move) or self._add_child(mine, move, their_child.key)
                if my_child.key != their_child.key:
                    raise TreeInvariantError(f"Move {move!r} leads to different positions in merged trees")
                stack.append((my_child, their_child))
        return self

    @classmethod
    def build(
        cls,
        games: Iterable[GameInput],
        *,
        anchor: Optional[PositionKey] = None,
        max_plies: Optional[int] = None,
        sample: Optional[SamplingFilter] = None,
        shards: int = 1,
        workers: Optional[int] = None,
        progress: bool = False,
    ) -> Tuple["ExplorerTree", InsertReport]:
        """Sample and insert ``games``, optionally building shards in parallel and merging them.

        Shards run on threads, so the GIL serialises parsing and insertion and
        ``shards > 1`` gives no speed-up; the statistics are identical either way.
        """
        excluded = 0
        items: List[Tuple[int, GameInput]] = []
        for index, game in enumerate(games):
            if sample is not None and not sample.matches(game):
                excluded += 1
                continue
            items.append((index, game))
        if sample is not None:
            logger.info("Sampling %s kept %d of %d games", sample.describe(), len(items), len(items) + excluded)

        def _build_shard(part: Sequence[Tuple[int, GameInput]]) -> Tuple["ExplorerTree", InsertReport]:
            shard_tree = cls(anchor, max_plies)
            shard_report = InsertReport()
            shard_tree._insert_labelled(part, shard_report)
            return shard_tree, shard_report

        shards = max(1, min(shards, len(items) or 1))
        if shards == 1:
            tree, report = _build_shard(tqdm(items, disable=not progress, desc="Building tree", unit="game"))
        else:
            parts = [items[i::shards] for i in range(shards)]
            results: List[Tuple[ExplorerTree, InsertReport]] = []
            with concurrent.futures.ThreadPoolExecutor(max_workers=workers or min(8, shards)) as ex:
                with tqdm(total=shards, disable=not progress, desc="Building shards") as pbar:
                    for result in ex.map(_build_shard, parts):
                        results.append(result)
                        pbar.update(1)
            tree, report = results[0]
            for shard_tree, shard_report in results[1:]:
                tree.merge(shard_tree)
                report = report.combine(shard_report)
        report.excluded = excluded
        logger.info("Built tree with %d nodes: %s", len(tree), report.summary())
        return tree, report

    def walk(self, path: Sequence[str]) -> Tuple[ExplorerNode, int]:
        """Follow ``path`` from the root; returns the deepest node reached and how many moves matched."""
        node = self.root
        for matched, move in enumerate(path):
            child = self.child(node, move)
            if child is None:
                return node, matched
            node = child
        return node, len(path)

    def path_to(self, node: ExplorerNode) -> MovePath:
        moves: List[str] = []
        while node.parent is not None:
            moves.append(node.move)
            node = self._nodes[node.parent]
        return tuple(reversed(moves))

    def iter_nodes(self) -> Iterator[Tuple[MovePath, ExplorerNode]]:
        """Depth-first (path, node) pairs, children in SAN order."""
        stack: List[Tuple[MovePath, ExplorerNode]] = [((), self.root)]
        while stack:
            path, node = stack.pop()
            yield path, node
            for move in sorted(node.children, reverse=True):
                stack.append((path + (move,), self._nodes[node.children[move]]))

    def by_path(self) -> Dict[MovePath, NodeStats]:
        return {path: node.stats for path, node in self.iter_nodes()}

    def to_dict(self) -> Dict:
        return {
            "anchor": self.anchor.epd,
            "max_plies": self.max_plies,
            "nodes": [
                {
                    "path": list(path),
                    "key": node.key.epd,
                    "zobrist": f"{node.key.zobrist:016x}",
                    "stats": node.stats.to_dict(),
                }
                for path, node in self.iter_nodes()
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "ExplorerTree":
        entries = data["nodes"]
        if not entries or entries[0]["path"]:
            raise TreeInvariantError("Snapshot does not start with the root node")
        root_entry = entries[0]
        anchor = PositionKey(root_entry["key"], int(root_entry["zobrist"], 16))
        if anchor.epd != data["anchor"]:
            raise TreeInvariantError("Snapshot root does not match its anchor")
        tree = cls(anchor, data.get("max_plies"))
        tree.root.stats = NodeStats.from_dict(root_entry["stats"])
        for entry in entries[1:]:
            *parent_path, move = entry["path"]
            parent, matched = tree.walk(parent_path)
            if matched != len(parent_path):
                raise TreeInvariantError(f"Snapshot node {entry['path']} appears before its parent")
            node = tree._add_child(parent, move, PositionKey(entry["key"], int(entry["zobrist"], 16)))
            node.stats = NodeStats.from_dict(entry["stats"])
        return tree
