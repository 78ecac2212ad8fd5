import datetime as dt

import chess
import pytest

from opening_explorer.game import GameMetadata, Result
from opening_explorer.sampling import (
    And,
    ColorIs,
    DateRange,
    Everything,
    Not,
    Or,
    RatingBand,
    SamplingFilter,
    all_of,
    any_of,
    apply,
    by_color,
    by_date_range,
    by_end_reason,
    by_opponent,
    by_opponent_rating_floor,
    by_rating_band,
    by_result,
    by_time_control,
    negate,
)

FULL = GameMetadata(
    result=Result.WHITE_WIN,
    white_rating=1800,
    black_rating=1500,
    time_control="blitz",
    end_reason="Hero won by resignation",
    timestamp=dt.date(2024, 4, 1),
    white="Hero",
    black="Villain",
    player_color=chess.WHITE,
    game_id="full",
)
BARE = GameMetadata(result=Result.DRAW)


@pytest.mark.parametrize(
    "f",
    [
        by_date_range("2024-01-01", None),
        by_color("white"),
        by_rating_band(1000, 2000),
        by_rating_band(1000, 2000, side="white"),
        by_opponent_rating_floor(1000),
        by_time_control("blitz"),
        by_opponent("villain"),
        by_end_reason("resignation"),
    ],
)
def test_leaves_accept_matching_game_and_fail_closed(f):
    assert f.accepts(FULL)
    assert not f.accepts(BARE)


def test_date_range_is_inclusive():
    assert by_date_range("2024-04-01", "2024-04-01").accepts(FULL)
    assert not by_date_range(None, dt.date(2024, 3, 31)).accepts(FULL)
    assert not by_date_range(dt.date(2024, 4, 2)).accepts(FULL)


def test_rating_band_sides():
    assert not by_rating_band(1600, None, side="black").accepts(FULL)
    assert by_rating_band(None, 1600, side="black").accepts(FULL)
    assert not by_rating_band(1600, None, side="both").accepts(FULL)
    assert by_rating_band(1400, 1900, side="both").accepts(FULL)
    with pytest.raises(ValueError):
        RatingBand(side="nobody")


def test_result_and_color():
    assert by_result("1-0").accepts(FULL)
    assert not by_result(Result.BLACK_WIN).accepts(FULL)
    assert by_result("draw").accepts(BARE)
    assert not by_color("b").accepts(FULL)
    with pytest.raises(ValueError):
        by_color("green")


def test_combinators():
    white = by_color("white")
    rapid = by_time_control("rapid")
    assert (white | rapid).accepts(FULL)
    assert not (white & rapid).accepts(FULL)
    assert (~rapid).accepts(FULL)
    assert negate(rapid).accepts(BARE)
    assert all_of().accepts(BARE)
    assert isinstance(all_of(), Everything)
    assert all_of(white) is white
    assert not any_of().accepts(FULL)


def test_composition_is_order_invariant():
    a, b, c = by_color("white"), by_time_control("rapid", "blitz"), by_opponent_rating_floor(1600)
    assert And((a, b)) == And((b, a))
    assert Or((a, c)) == Or((c, a))
    for meta in (FULL, BARE):
        assert ((a & b) | c).accepts(meta) == (c | (b & a)).accepts(meta)


def test_cheap_filters_run_first():
    combined = And((by_end_reason("mate"), by_color("white"), Everything()))
    assert [f.kind for f in combined.filters] == ["everything", "color", "end_reason"]


def test_dict_round_trip():
    f = all_of(
        by_color("black"),
        by_date_range("2023-01-01", "2023-12-31"),
        any_of(by_time_control("blitz", "bullet"), ~by_result("0-1")),
        by_rating_band(1200, None, side="both"),
        by_opponent("Magnus"),
        by_end_reason("time"),
        by_opponent_rating_floor(1500),
    )
    data = f.to_dict()
    assert data["kind"] == "and"
    restored = SamplingFilter.from_dict(data)
    assert restored == f
    assert isinstance(SamplingFilter.from_dict(Not(ColorIs(chess.WHITE)).to_dict()), Not)


def test_from_dict_rejects_unknown_kind():
    with pytest.raises(ValueError):
        SamplingFilter.from_dict({"kind": "vibes"})


def test_describe():
    f = by_color("white") & by_date_range("2024-01-01")
    assert f.describe() == "(color(color=white) AND date_range(start=2024-01-01))"


def test_apply_filters_games(make_game):
    games = [
        make_game("1. e4", "1-0", timestamp=dt.date(2024, 1, 5)),
        make_game("1. d4", "0-1", timestamp=dt.date(2022, 1, 5)),
        make_game("1. c4", "1-0"),
    ]
    kept = list(apply(DateRange(start=dt.date(2023, 1, 1)), games))
    assert [g.moves for g in kept] == [("e4",)]
    assert [g.moves for g in apply(by_result("1-0"), games)] == [("e4",), ("c4",)]


def test_result_from_the_players_perspective():
    as_black = GameMetadata(result=Result.BLACK_WIN, player_color=chess.BLACK)
    assert by_result("1-0", perspective="player").accepts(as_black)
    assert not by_result("1-0").accepts(as_black)
    assert by_result("0-1", perspective="player").accepts(FULL) is False
    assert not by_result("1/2-1/2", perspective="player").accepts(BARE)
    with pytest.raises(ValueError):
        by_result("1-0", perspective="sideways")
