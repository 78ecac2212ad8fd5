"""Per-node statistics and the rules for combining them."""

import datetime as dt
from dataclasses import dataclass
from typing import Dict, Optional

import chess

from .game import Outcome


@dataclass
class NodeStats:
    """Aggregate for one node, counted from the perspective of the side that moved into it."""

    visits: int = 0
    wins: int = 0
    losses: int = 0
    draws: int = 0
    ended: int = 0
    rating_sum: int = 0
    rating_count: int = 0
    last_played: Optional[dt.date] = None

    @property
    def average_rating(self) -> Optional[float]:
        if not self.rating_count:
            return None
        return self.rating_sum / self.rating_count

    def as_colors(self, mover: chess.Color) -> Dict[str, int]:
        """Outcome counts keyed by white-win / black-win / draw."""
        white, black = (self.wins, self.losses) if mover == chess.WHITE else (self.losses, self.wins)
        return {"white-win": white, "black-win": black, "draw": self.draws}

    def to_dict(self) -> Dict:
        return {
            "visits": self.visits,
            "wins": self.wins,
            "losses": self.losses,
            "draws": self.draws,
            "ended": self.ended,
            "rating_sum": self.rating_sum,
            "rating_count": self.rating_count,
            "last_played": self.last_played.isoformat() if self.last_played else None,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "NodeStats":
        last = data.get("last_played")
        return cls(
            visits=data["visits"],
            wins=data["wins"],
            losses=data["losses"],
            draws=data["draws"],
            ended=data["ended"],
            rating_sum=data["rating_sum"],
            rating_count=data["rating_count"],
            last_played=dt.date.fromisoformat(last) if last else None,
        )


@dataclass(frozen=True)
class Rates:
    win: float
    draw: float
    loss: float


def rates(stats: NodeStats) -> Optional[Rates]:
    """Outcome rates, or None for a node no game has reached."""
    if stats.visits == 0:
        return None
    total = stats.visits
    return Rates(stats.wins / total, stats.draws / total, stats.losses / total)


def _latest(a: Optional[dt.date], b: Optional[dt.date]) -> Optional[dt.date]:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


class StatsAggregator:
    """Update and combine NodeStats. Every operation is order-independent."""

    @staticmethod
    def update(
        stats: NodeStats,
        outcome: Outcome,
        mover_rating: Optional[int] = None,
        *,
        ended: bool = False,
        played: Optional[dt.date] = None,
    ) -> None:
        stats.visits += 1
        if outcome is Outcome.WIN:
            stats.wins += 1
        elif outcome is Outcome.LOSS:
            stats.losses += 1
        else:
            stats.draws += 1
        if mover_rating is not None:
            stats.rating_sum += mover_rating
            stats.rating_count += 1
        if ended:
            stats.ended += 1
        stats.last_played = _latest(stats.last_played, played)

    @staticmethod
    def merge_into(target: NodeStats, other: NodeStats) -> None:
        target.visits += other.visits
        target.wins += other.wins
        target.losses += other.losses
        target.draws += other.draws
        target.ended += other.ended
        target.rating_sum += other.rating_sum
        target.rating_count += other.rating_count
        target.last_played = _latest(target.last_played, other.last_played)

    @classmethod
    def combine(cls, a: NodeStats, b: NodeStats) -> NodeStats:
        merged = NodeStats()
        cls.merge_into(merged, a)
        cls.merge_into(merged, b)
        return merged
