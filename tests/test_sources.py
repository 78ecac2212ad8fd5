import io
import sys

import chess

from opening_explorer.sources import collect_pgn_files, load_sources, read_pgn


def test_read_pgn_keeps_metadata_and_errors(sample_pgn_path):
    with sample_pgn_path.open("r", encoding="utf-8") as f:
        games = list(read_pgn(f, "Hero"))
    assert [g.metadata.game_id for g in games] == ["game1", "game2", "game3", "game4"]
    assert games[0].metadata.player_color == chess.WHITE
    assert games[1].metadata.player_color == chess.BLACK
    assert games[2].metadata.player_color is None
    assert games[1].metadata.time_control == "bullet"
    assert games[1].metadata.end_reason == "Time forfeit"
    assert games[0].parse().moves == ("e4", "e5", "Nf3", "Nc6", "Bc4", "Bc5")
    assert [g.error is not None for g in games] == [False, False, False, True]


def test_collect_pgn_files(sample_pgn_path, tmp_path):
    assert collect_pgn_files([sample_pgn_path.parent]) == [sample_pgn_path]
    assert collect_pgn_files([tmp_path]) == []


def test_load_sources_mixes_pgn_and_store(sample_pgn_path, sample_games_path):
    games = list(load_sources([str(sample_pgn_path), str(sample_games_path)], "Hero"))
    assert len(games) == 7


def test_load_sources_reads_stdin(monkeypatch, sample_pgn_path):
    monkeypatch.setattr(sys, "stdin", io.StringIO(sample_pgn_path.read_text(encoding="utf-8")))
    games = list(load_sources(["-"]))
    assert len(games) == 4


def test_load_sources_warns_on_empty_directory(tmp_path, caplog):
    with caplog.at_level("WARNING"):
        assert list(load_sources([str(tmp_path)])) == []
    assert "No PGN files found" in caplog.text
