from pathlib import Path
from typing import Sequence, Union

import pytest

from opening_explorer.game import GameMetadata, GameRecord, Result, parse


def _make_game(moves: Union[str, Sequence[str]], result: str = "1-0", **meta) -> GameRecord:
    return parse(moves, GameMetadata(Result.from_token(result), **meta))


@pytest.fixture(scope="session")
def sample_pgn_path() -> Path:
    return Path(__file__).parent / "fixtures" / "sample.pgn"


@pytest.fixture(scope="session")
def sample_games_path() -> Path:
    return Path(__file__).parent / "fixtures" / "sample_games.json"


@pytest.fixture()
def make_game():
    return _make_game


@pytest.fixture()
def opening_games():
    return [
        _make_game("1. e4 e5 2. Nf3 Nc6 3. Bb5", "1-0", white_rating=1800, black_rating=1750),
        _make_game("1. e4 e5 2. Nf3 Nc6 3. Bc4", "0-1", white_rating=1600, black_rating=1650),
        _make_game("1. e4 c5 2. Nf3 d6", "1/2-1/2", white_rating=2000),
        _make_game("1. d4 d5 2. c4", "1-0", black_rating=1900),
        _make_game("1. e4 e5", "0-1"),
        _make_game("1. Nf3 d5 2. d4", "1/2-1/2", white_rating=1700, black_rating=1700),
    ]
