"""Composable, serializable game filters.

Filters are small frozen dataclasses (leaves plus And/Or/Not) rather than
closures, so a composed filter can be printed, stored and reloaded. Every leaf
that needs a piece of metadata the game does not carry excludes the game.
"""

import datetime as dt
from dataclasses import dataclass
from typing import Callable, ClassVar, Dict, Iterable, Iterator, Optional, Tuple, Type, TypeVar, Union

import chess

from .game import GameMetadata, GameRecord, RawGame, Result

GameLike = Union[GameRecord, RawGame]
G = TypeVar("G", GameRecord, RawGame)

_REGISTRY: Dict[str, Type["SamplingFilter"]] = {}
RATING_SIDES = ("player", "white", "black", "both")
RESULT_PERSPECTIVES = ("color", "player")


def _register(cls):
    _REGISTRY[cls.kind] = cls
    return cls


def _as_date(value: Union[str, dt.date, None]) -> Optional[dt.date]:
    if value is None or isinstance(value, dt.date):
        return value
    return dt.date.fromisoformat(value)


def _color(value: Union[str, chess.Color]) -> chess.Color:
    if isinstance(value, bool):
        return value
    name = value.strip().lower()
    if name in {"white", "w"}:
        return chess.WHITE
    if name in {"black", "b"}:
        return chess.BLACK
    raise ValueError(f"Unknown color: {value!r}")


def _in_band(rating: Optional[int], minimum: Optional[int], maximum: Optional[int]) -> bool:
    if rating is None:
        return False
    if minimum is not None and rating < minimum:
        return False
    if maximum is not None and rating > maximum:
        return False
    return True


class SamplingFilter:
    """Base class of the filter algebra."""

    kind: ClassVar[str] = ""
    cost: ClassVar[int] = 1

    def accepts(self, meta: GameMetadata) -> bool:
        raise NotImplementedError

    def matches(self, game: GameLike) -> bool:
        return self.accepts(game.metadata)

    def __call__(self, game: GameLike) -> bool:
        return self.matches(game)

    def __and__(self, other: "SamplingFilter") -> "SamplingFilter":
        return And((self, other))

    def __or__(self, other: "SamplingFilter") -> "SamplingFilter":
        return Or((self, other))

    def __invert__(self) -> "SamplingFilter":
        return Not(self)

    def weight(self) -> int:
        return self.cost

    def params(self) -> Dict:
        return {}

    def to_dict(self) -> Dict:
        return {"kind": self.kind, **self.params()}

    @classmethod
    def from_params(cls, params: Dict) -> "SamplingFilter":
        return cls(**params)

    @staticmethod
    def from_dict(data: Dict) -> "SamplingFilter":
        params = dict(data)
        kind = params.pop("kind", None)
        if kind not in _REGISTRY:
            raise ValueError(f"Unknown filter kind: {kind!r}")
        return _REGISTRY[kind].from_params(params)

    def describe(self) -> str:
        args = ", ".join(f"{k}={v}" for k, v in self.params().items() if v is not None)
        return f"{self.kind}({args})"


@_register
@dataclass(frozen=True)
class Everything(SamplingFilter):
    kind: ClassVar[str] = "everything"
    cost: ClassVar[int] = 0

    def accepts(self, meta: GameMetadata) -> bool:
        return True


@_register
@dataclass(frozen=True)
class DateRange(SamplingFilter):
    start: Optional[dt.date] = None
    end: Optional[dt.date] = None

    kind: ClassVar[str] = "date_range"
    cost: ClassVar[int] = 2

    def accepts(self, meta: GameMetadata) -> bool:
        if meta.timestamp is None:
            return False
        if self.start is not None and meta.timestamp < self.start:
            return False
        if self.end is not None and meta.timestamp > self.end:
            return False
        return True

    def params(self) -> Dict:
        return {
            "start": self.start.isoformat() if self.start else None,
            "end": self.end.isoformat() if self.end else None,
        }

    @classmethod
    def from_params(cls, params: Dict) -> "DateRange":
        return cls(_as_date(params.get("start")), _as_date(params.get("end")))


@_register
@dataclass(frozen=True)
class ColorIs(SamplingFilter):
    color: chess.Color

    kind: ClassVar[str] = "color"

    def accepts(self, meta: GameMetadata) -> bool:
        return meta.player_color is not None and meta.player_color == self.color

    def params(self) -> Dict:
        return {"color": chess.COLOR_NAMES[self.color]}

    @classmethod
    def from_params(cls, params: Dict) -> "ColorIs":
        return cls(_color(params["color"]))


@_register
@dataclass(frozen=True)
class RatingBand(SamplingFilter):
    """Rating of ``side`` within [minimum, maximum]; ``both`` requires both players inside."""

    minimum: Optional[int] = None
    maximum: Optional[int] = None
    side: str = "player"

    kind: ClassVar[str] = "rating_band"

    def __post_init__(self) -> None:
        if self.side not in RATING_SIDES:
            raise ValueError(f"Unknown rating side: {self.side!r}")

    def accepts(self, meta: GameMetadata) -> bool:
        if self.side == "player":
            return _in_band(meta.player_rating, self.minimum, self.maximum)
        if self.side == "both":
            return all(_in_band(r, self.minimum, self.maximum) for r in (meta.white_rating, meta.black_rating))
        return _in_band(meta.rating_for(_color(self.side)), self.minimum, self.maximum)

    def params(self) -> Dict:
        return {"minimum": self.minimum, "maximum": self.maximum, "side": self.side}


@_register
@dataclass(frozen=True)
class OpponentRatingFloor(SamplingFilter):
    floor: int

    kind: ClassVar[str] = "opponent_rating_floor"

    def accepts(self, meta: GameMetadata) -> bool:
        rating = meta.opponent_rating
        return rating is not None and rating >= self.floor

    def params(self) -> Dict:
        return {"floor": self.floor}


@_register
@dataclass(frozen=True)
class TimeControlIs(SamplingFilter):
    classes: Tuple[str, ...]

    kind: ClassVar[str] = "time_control"
    cost: ClassVar[int] = 2

    def accepts(self, meta: GameMetadata) -> bool:
        return meta.time_control is not None and meta.time_control in self.classes

    def params(self) -> Dict:
        return {"classes": list(self.classes)}

    @classmethod
    def from_params(cls, params: Dict) -> "TimeControlIs":
        return cls(tuple(params["classes"]))


@_register
@dataclass(frozen=True)
class ResultIs(SamplingFilter):
    """Game result. With the ``player`` perspective, "1-0" means the player won."""

    result: Result
    perspective: str = "color"

    kind: ClassVar[str] = "result"

    def __post_init__(self) -> None:
        if self.perspective not in RESULT_PERSPECTIVES:
            raise ValueError(f"Unknown result perspective: {self.perspective!r}")

    def accepts(self, meta: GameMetadata) -> bool:
        if meta.result is None:
            return False
        if self.perspective == "color":
            return meta.result is self.result
        if meta.player_color is None:
            return False
        return meta.result.for_color(meta.player_color) is self.result.for_color(chess.WHITE)

    def params(self) -> Dict:
        return {"result": self.result.value, "perspective": self.perspective}

    @classmethod
    def from_params(cls, params: Dict) -> "ResultIs":
        return cls(Result.from_token(params["result"]), params.get("perspective", "color"))


@_register
@dataclass(frozen=True)
class OpponentIs(SamplingFilter):
    name: str

    kind: ClassVar[str] = "opponent"
    cost: ClassVar[int] = 3

    def accepts(self, meta: GameMetadata) -> bool:
        opponent = meta.opponent_name
        return opponent is not None and opponent.lower() == self.name.lower()

    def params(self) -> Dict:
        return {"name": self.name}


@_register
@dataclass(frozen=True)
class EndReasonIs(SamplingFilter):
    """Case-insensitive substring match on the termination text."""

    text: str

    kind: ClassVar[str] = "end_reason"
    cost: ClassVar[int] = 3

    def accepts(self, meta: GameMetadata) -> bool:
        return meta.end_reason is not None and self.text.lower() in meta.end_reason.lower()

    def params(self) -> Dict:
        return {"text": self.text}


def _by_weight(filters: Iterable[SamplingFilter]) -> Tuple[SamplingFilter, ...]:
    return tuple(sorted(filters, key=lambda f: (f.weight(), f.kind, f.describe())))


@_register
@dataclass(frozen=True)
class And(SamplingFilter):
    filters: Tuple[SamplingFilter, ...]

    kind: ClassVar[str] = "and"

    def __post_init__(self) -> None:
        object.__setattr__(self, "filters", _by_weight(self.filters))

    def accepts(self, meta: GameMetadata) -> bool:
        return all(f.accepts(meta) for f in self.filters)

    def weight(self) -> int:
        return sum(f.weight() for f in self.filters)

    def params(self) -> Dict:
        return {"filters": [f.to_dict() for f in self.filters]}

    @classmethod
    def from_params(cls, params: Dict) -> "And":
        return cls(tuple(SamplingFilter.from_dict(f) for f in params["filters"]))

    def describe(self) -> str:
        if not self.filters:
            return "everything"
        return "(" + " AND ".join(f.describe() for f in self.filters) + ")"


@_register
@dataclass(frozen=True)
class Or(SamplingFilter):
    filters: Tuple[SamplingFilter, ...]

    kind: ClassVar[str] = "or"

    def __post_init__(self) -> None:
        object.__setattr__(self, "filters", _by_weight(self.filters))

    def accepts(self, meta: GameMetadata) -> bool:
        return any(f.accepts(meta) for f in self.filters)

    def weight(self) -> int:
        return sum(f.weight() for f in self.filters)

    def params(self) -> Dict:
        return {"filters": [f.to_dict() for f in self.filters]}

    @classmethod
    def from_params(cls, params: Dict) -> "Or":
        return cls(tuple(SamplingFilter.from_dict(f) for f in params["filters"]))

    def describe(self) -> str:
        if not self.filters:
            return "nothing"
        return "(" + " OR ".join(f.describe() for f in self.filters) + ")"


@_register
@dataclass(frozen=True)
class Not(SamplingFilter):
    filter: SamplingFilter

    kind: ClassVar[str] = "not"

    def accepts(self, meta: GameMetadata) -> bool:
        return not self.filter.accepts(meta)

    def weight(self) -> int:
        return self.filter.weight()

    def params(self) -> Dict:
        return {"filter": self.filter.to_dict()}

    @classmethod
    def from_params(cls, params: Dict) -> "Not":
        return cls(SamplingFilter.from_dict(params["filter"]))

    def describe(self) -> str:
        return f"NOT {self.filter.describe()}"


def by_date_range(start: Union[str, dt.date, None] = None, end: Union[str, dt.date, None] = None) -> SamplingFilter:
    return DateRange(_as_date(start), _as_date(end))


def by_color(color: Union[str, chess.Color]) -> SamplingFilter:
    return ColorIs(_color(color))


def by_rating_band(minimum: Optional[int] = None, maximum: Optional[int] = None, side: str = "player") -> SamplingFilter:
    return RatingBand(minimum, maximum, side)


def by_opponent_rating_floor(floor: int) -> SamplingFilter:
    return OpponentRatingFloor(floor)


def by_time_control(*classes: str) -> SamplingFilter:
    return TimeControlIs(tuple(c.lower() for c in classes))


def by_result(result: Union[str, Result], perspective: str = "color") -> SamplingFilter:
    return ResultIs(result if isinstance(result, Result) else Result.from_token(result), perspective)


def by_opponent(name: str) -> SamplingFilter:
    return OpponentIs(name)


def by_end_reason(text: str) -> SamplingFilter:
    return EndReasonIs(text)


def all_of(*filters: SamplingFilter) -> SamplingFilter:
    if not filters:
        return Everything()
    return filters[0] if len(filters) == 1 else And(filters)


def any_of(*filters: SamplingFilter) -> SamplingFilter:
    if len(filters) == 1:
        return filters[0]
    return Or(filters)


def negate(f: SamplingFilter) -> SamplingFilter:
    return Not(f)


def apply(f: Union[SamplingFilter, Callable[[GameLike], bool]], games: Iterable[G]) -> Iterator[G]:
    """Yield the games that pass ``f``."""
    return (game for game in games if f(game))
