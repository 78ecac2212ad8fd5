from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from .position import PositionKey
from .sampling import SamplingFilter
from .tree import ExplorerTree, GameInput, InsertReport


@dataclass(frozen=True)
class BuildOptions:
    """Parameters of one tree build."""

    anchor: Optional[PositionKey] = None
    max_plies: Optional[int] = None
    sample: Optional[SamplingFilter] = None
    shards: int = 1
    workers: Optional[int] = None
    progress: bool = False

    def build(self, games: Iterable[GameInput]) -> Tuple[ExplorerTree, InsertReport]:
        return ExplorerTree.build(
            games,
            anchor=self.anchor,
            max_plies=self.max_plies,
            sample=self.sample,
            shards=self.shards,
            workers=self.workers,
            progress=self.progress,
        )
