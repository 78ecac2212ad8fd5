"""Read raw games from PGN files, stdin and JSON game stores."""

import logging
import sys
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, TextIO

import chess.pgn

from .game import RawGame, metadata_from_headers
from .storage import raw_games_from_store

logger = logging.getLogger(__name__)


def collect_pgn_files(paths: Iterable[Path]) -> List[Path]:
    files: List[Path] = []
    for p in paths:
        p = Path(p)
        if p.is_dir():
            files.extend(sorted(p.rglob("*.pgn")))
        elif p.is_file() and p.suffix.lower() == ".pgn":
            files.append(p)
    return files


def read_pgn(handle: TextIO, player: Optional[str] = None) -> Iterator[RawGame]:
    """Yield every game in a PGN stream as a RawGame.

    Games python-chess could not read cleanly keep the error so that parsing
    rejects them as a whole.
    """
    while True:
        game = chess.pgn.read_game(handle)
        if game is None:
            break
        headers = game.headers
        movetext = game.accept(chess.pgn.StringExporter(headers=False, variations=False, comments=False))
        error = f"PGN error: {game.errors[0]}" if game.errors else None
        yield RawGame(movetext, metadata_from_headers(headers, player), headers.get("FEN"), error)


def load_sources(inputs: Iterable[str], player: Optional[str] = None) -> Iterator[RawGame]:
    """Yield raw games from PGN files, directories, JSON stores, or ``-`` for stdin."""
    for item in inputs:
        if item == "-":
            yield from read_pgn(sys.stdin, player)
            continue
        path = Path(item)
        if path.suffix.lower() == ".json":
            logger.debug("Reading game store %s", path)
            yield from raw_games_from_store(path, player)
            continue
        files = collect_pgn_files([path])
        if not files:
            logger.warning("No PGN files found at %s", path)
        for file in files:
            logger.debug("Reading PGN file %s", file)
            with file.open("r", encoding="utf-8", errors="replace") as f:
                yield from read_pgn(f, player)
