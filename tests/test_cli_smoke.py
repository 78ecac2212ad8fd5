import orjson
import pytest

from opening_explorer import cli


def test_stats_from_pgn(sample_pgn_path, capsys):
    code = cli.main(["stats", "-i", str(sample_pgn_path), "--player", "Hero", "e4", "--branches"])
    out = capsys.readouterr().out
    assert code == 0
    assert "2 games | White 50.00%" in out
    assert "Next moves" in out
    assert "e5" in out and "c5" in out


def test_stats_unknown_line(sample_pgn_path, capsys):
    code = cli.main(["stats", "-i", str(sample_pgn_path), "d4", "e5"])
    out = capsys.readouterr().out
    assert code == 1
    assert "no games reach d4 e5" in out


def test_stats_with_sampling_flags(sample_pgn_path, capsys):
    code = cli.main(["stats", "-i", str(sample_pgn_path), "--player", "Hero", "--color", "white"])
    assert code == 0
    assert "1 games" in capsys.readouterr().out


def test_build_then_query_snapshot(sample_pgn_path, sample_games_path, tmp_path, capsys):
    snapshot = tmp_path / "tree.json"
    code = cli.main(["build", str(sample_pgn_path), str(sample_games_path), "-o", str(snapshot)])
    out = capsys.readouterr().out
    assert code == 0
    assert "sampled 6 of 7 games" in out
    assert snapshot.exists()

    code = cli.main(["stats", "--tree", str(snapshot), "e4", "--json"])
    data = orjson.loads(capsys.readouterr().out)
    assert code == 0
    assert data["path"] == ["e4"]
    assert data["visits"] == 4
    assert {c["move"] for c in data["children"]} == {"e5", "c5"}


def test_build_with_nothing_matching(sample_pgn_path, tmp_path, capsys):
    snapshot = tmp_path / "tree.json"
    code = cli.main(["build", str(sample_pgn_path), "-o", str(snapshot), "--color", "white"])
    assert code == 1
    assert "No games match" in capsys.readouterr().out
    assert not snapshot.exists()


def test_stats_needs_games(capsys):
    assert cli.main(["stats", "e4"]) == 2


def test_corrupt_snapshot_is_reported(tmp_path):
    snapshot = tmp_path / "tree.json"
    snapshot.write_text("{}", encoding="utf-8")
    assert cli.main(["stats", "--tree", str(snapshot)]) == 1
    assert cli.main(["stats", "--tree", str(tmp_path / "missing.json")]) == 1


def test_bad_anchor_is_a_usage_error(sample_pgn_path):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["stats", "-i", str(sample_pgn_path), "--anchor", "8/8/8/8/8/8/8/8 w - - 0 1"])
    assert excinfo.value.code == 2


def test_explore_interactive(sample_pgn_path, monkeypatch, capsys):
    answers = iter(["1", "b", "d4", "zz", "r", "q"])
    monkeypatch.setattr("builtins.input", lambda prompt="": next(answers))
    code = cli.main(["explore", "-i", str(sample_pgn_path)])
    out = capsys.readouterr().out
    assert code == 0
    assert "Loaded 3 games" in out
    assert "Path: e4" in out
    assert "Path: d4" in out
    assert "No games continue with zz here." in out


def test_explore_stops_at_end_of_input(sample_pgn_path, monkeypatch):
    def _eof(prompt=""):
        raise EOFError

    monkeypatch.setattr("builtins.input", _eof)
    assert cli.main(["explore", "-i", str(sample_pgn_path)]) == 0


def test_snapshot_rejects_build_flags(sample_pgn_path, tmp_path, capsys):
    snapshot = tmp_path / "tree.json"
    assert cli.main(["build", str(sample_pgn_path), "-o", str(snapshot)]) == 0
    capsys.readouterr()

    code = cli.main(["stats", "--tree", str(snapshot), "--player", "Hero", "--color", "white"])
    captured = capsys.readouterr()
    assert code == 2
    assert "games |" not in captured.out
    assert "--color" in captured.err and "--player" in captured.err

    assert cli.main(["explore", "--tree", str(snapshot), "--max-plies", "4"]) == 2
    assert cli.main(["stats", "--tree", str(snapshot), "--order-by", "move"]) == 0
