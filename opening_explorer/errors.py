from typing import Optional


class ExplorerError(Exception):
    """Base class for errors raised by the opening explorer."""


class InvalidPosition(ExplorerError, ValueError):
    """A board state that cannot be canonicalized."""


class MalformedGame(ExplorerError, ValueError):
    """A game whose move text fails rules validation."""

    def __init__(self, message: str, *, ply: Optional[int] = None, token: Optional[str] = None) -> None:
        super().__init__(message)
        self.ply = ply
        self.token = token


class TreeInvariantError(ExplorerError, RuntimeError):
    """Internal corruption of an ExplorerTree. Always a bug."""


class SnapshotError(ExplorerError, ValueError):
    """A tree snapshot that cannot be loaded."""
