import chess
import pytest

from opening_explorer.query import PathNotFound, QueryEngine, normalize_path, query
from opening_explorer.position import STARTING_KEY
from opening_explorer.tree import ExplorerTree


@pytest.fixture()
def engine(opening_games):
    tree = ExplorerTree()
    tree.insert_all(opening_games)
    return QueryEngine(tree)


def test_root_view(engine):
    view = engine.query()
    assert view.path == ()
    assert view.visits == 6
    assert [c.move for c in view.children] == ["e4", "Nf3", "d4"]
    assert view.fen == STARTING_KEY.fen


def test_child_summary(engine):
    e4 = engine.query().children[0]
    assert e4.visits == 4
    assert e4.win_rate == pytest.approx(0.25)
    assert e4.draw_rate == pytest.approx(0.25)
    assert e4.average_rating == pytest.approx(1800)


def test_node_view_counts(engine):
    view = engine.query("1. e4 e5")
    assert view.path == ("e4", "e5")
    assert view.mover == chess.BLACK
    assert (view.visits, view.wins, view.losses, view.draws, view.ended) == (3, 2, 1, 0, 1)
    assert view.outcomes == {"white-win": 1, "black-win": 2, "draw": 0}
    assert view.rates.win == pytest.approx(2 / 3)
    assert [c.move for c in view.children] == ["Nf3"]


@pytest.mark.parametrize(
    "order_by, expected",
    [
        ("visits", ["e4", "Nf3", "d4"]),
        ("win_rate", ["d4", "e4", "Nf3"]),
        ("draw_rate", ["Nf3", "e4", "d4"]),
        ("rating", ["e4", "Nf3", "d4"]),
        ("move", ["Nf3", "d4", "e4"]),
    ],
)
def test_orderings(engine, order_by, expected):
    assert [c.move for c in engine.query(order_by=order_by).children] == expected


def test_limit(engine):
    assert [c.move for c in engine.query(limit=1).children] == ["e4"]


def test_unknown_ordering(engine):
    with pytest.raises(ValueError):
        engine.query(order_by="vibes")


def test_unplayed_move_returns_path_not_found(make_game):
    tree = ExplorerTree()
    tree.insert_all([make_game("1. e4 e5"), make_game("1. e4 c5", "0-1")])
    result = query(tree, ["d4"])
    assert isinstance(result, PathNotFound)
    assert result.prefix_length == 0
    assert result.move == "d4"
    assert "diverges at move 1" in str(result)


def test_partial_path_reports_matched_prefix(engine):
    result = engine.query("d4 e5")
    assert result == PathNotFound(("d4", "e5"), 1)


@pytest.mark.parametrize("path, prefix", [("e4 Ke3", 1), ("xyz", 0), ("e4 e5 Nf3 Nc6 Bb5 a6", 5)])
def test_illegal_or_unknown_moves_do_not_raise(engine, path, prefix):
    result = engine.query(path)
    assert isinstance(result, PathNotFound)
    assert result.prefix_length == prefix


@pytest.mark.parametrize("path", ["e2e4 e7e5", ["e4", "e5"], "1. e4 e5", "1.e4 e5!?"])
def test_move_notations_are_normalized(engine, path):
    assert engine.query(path).path == ("e4", "e5")


def test_normalize_path_stops_at_first_bad_token():
    tokens, sans = normalize_path(STARTING_KEY, "Ng1f3 d7d5 Qh8 e4")
    assert tokens == ("Ng1f3", "d7d5", "Qh8", "e4")
    assert sans == ["Nf3", "d5"]


def test_empty_tree_has_no_rates():
    view = query(ExplorerTree())
    assert view.visits == 0
    assert view.rates is None
    assert view.children == ()
    assert view.to_dict()["winRate"] is None


def test_to_dict(engine):
    data = engine.query("e4").to_dict()
    assert data["path"] == ["e4"]
    assert data["mover"] == "white"
    assert data["visits"] == 4
    assert data["outcomes"] == {"white-win": 1, "black-win": 2, "draw": 1}
    assert {c["move"] for c in data["children"]} == {"e5", "c5"}
    assert data["averageRating"] == pytest.approx(1800)


def test_branches(engine):
    assert engine.branches("e4") == ["c5", "e5"]
    assert engine.branches("h4") == []
    assert engine.branches("e4 e5 Nf3 Nc6 Bb5") == []


def test_top_lines(engine):
    assert engine.top_lines(2, limit=2) == [(("e4", "e5"), 3), (("Nf3", "d5"), 1)]


def test_common_positions_merge_transpositions(make_game):
    tree = ExplorerTree()
    tree.insert_all([make_game("1. Nf3 d5 2. d4"), make_game("1. d4 d5 2. Nf3"), make_game("1. e4 e5 2. Nf3")])
    top = QueryEngine(tree).common_positions(3)
    key, count = top[0]
    assert count == 2
    assert key == make_game("1. d4 d5 2. Nf3").final_key
    assert len(top) == 2
