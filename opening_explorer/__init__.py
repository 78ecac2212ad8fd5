"""Opening explorer: move-tree statistics over any collection of chess games."""

from .errors import ExplorerError, InvalidPosition, MalformedGame, SnapshotError, TreeInvariantError
from .game import GameMetadata, GameRecord, Outcome, RawGame, Result, parse
from .position import STARTING_KEY, PositionKey, canonicalize
from .query import NodeView, PathNotFound, QueryEngine, query
from .stats import NodeStats, StatsAggregator
from .tree import ExplorerNode, ExplorerTree, InsertReport

__all__ = [
    "ExplorerError",
    "InvalidPosition",
    "MalformedGame",
    "SnapshotError",
    "TreeInvariantError",
    "GameMetadata",
    "GameRecord",
    "Outcome",
    "RawGame",
    "Result",
    "parse",
    "STARTING_KEY",
    "PositionKey",
    "canonicalize",
    "NodeView",
    "PathNotFound",
    "QueryEngine",
    "query",
    "NodeStats",
    "StatsAggregator",
    "ExplorerNode",
    "ExplorerTree",
    "InsertReport",
]
