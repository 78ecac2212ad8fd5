import argparse
import datetime as dt
import logging
import sys
from pathlib import Path
from typing import List, Optional

import orjson
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .config import BuildOptions
from .constants import DEFAULT_ORDER, DEFAULT_TOP, DEFAULT_TREE_FILE, TIME_CONTROLS
from .errors import ExplorerError
from .position import PositionKey
from .query import ORDERINGS, NodeView, PathNotFound, QueryEngine
from .sampling import (
    RATING_SIDES,
    RESULT_PERSPECTIVES,
    SamplingFilter,
    all_of,
    by_color,
    by_date_range,
    by_end_reason,
    by_opponent,
    by_opponent_rating_floor,
    by_rating_band,
    by_result,
    by_time_control,
)
from .sources import load_sources
from .storage import load_tree, save_tree
from .tree import ExplorerTree

logger = logging.getLogger(__name__)


def setup_logging(verbosity: int = 0) -> None:
    if verbosity < 0:
        level = logging.WARNING
    elif verbosity > 0:
        level = logging.DEBUG
    else:
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def format_bar(view: NodeView, width: int = 30) -> str:
    if view.rates is None:
        return " " * width
    outcomes = view.outcomes
    w_count = int(round(width * outcomes["white-win"] / view.visits))
    d_count = int(round(width * outcomes["draw"] / view.visits))
    return "#" * w_count + "=" * d_count + "-" * (width - w_count - d_count)


def _pct(value: Optional[float]) -> str:
    return "-" if value is None else f"{value:.1%}"


def render_view(console: Console, view: NodeView, *, branches: bool = True) -> None:
    console.print(f"Path: {escape(' '.join(view.path)) if view.path else '<start>'}")
    if view.rates is None:
        console.print("No games reach this position.")
        return
    outcomes = view.outcomes
    console.print(
        f"{view.visits} games | White {outcomes['white-win'] / view.visits:.2%} "
        f"Draw {outcomes['draw'] / view.visits:.2%} Black {outcomes['black-win'] / view.visits:.2%}"
    )
    console.print(f"Results: {format_bar(view)}", markup=False)
    if view.average_rating is not None:
        console.print(f"Average rating of the side that reached it: {view.average_rating:.0f}")
    if view.ended:
        console.print(f"{view.ended} games end here")
    if not branches:
        return
    if not view.children:
        console.print("No further moves.")
        return

    table = Table(title="Next moves")
    table.add_column("#", justify="right")
    table.add_column("Move")
    table.add_column("Games", justify="right")
    table.add_column("Share", justify="right")
    table.add_column("Win %", justify="right")
    table.add_column("Draw %", justify="right")
    table.add_column("Avg rating", justify="right")
    for idx, child in enumerate(view.children, 1):
        rating = "-" if child.average_rating is None else f"{child.average_rating:.0f}"
        table.add_row(
            str(idx),
            escape(child.move),
            str(child.visits),
            _pct(child.visits / view.visits),
            _pct(child.win_rate),
            _pct(child.draw_rate),
            rating,
        )
    console.print(table)


def sample_from_args(args: argparse.Namespace) -> Optional[SamplingFilter]:
    filters: List[SamplingFilter] = []
    if args.color:
        filters.append(by_color(args.color))
    if args.date_from or args.date_to:
        filters.append(by_date_range(args.date_from, args.date_to))
    if args.min_rating is not None or args.max_rating is not None:
        filters.append(by_rating_band(args.min_rating, args.max_rating, args.rating_side))
    if args.min_opponent_rating is not None:
        filters.append(by_opponent_rating_floor(args.min_opponent_rating))
    if args.time_control:
        filters.append(by_time_control(*args.time_control))
    if args.result:
        filters.append(by_result(args.result, args.result_perspective))
    if args.opponent:
        filters.append(by_opponent(args.opponent))
    if args.end_reason:
        filters.append(by_end_reason(args.end_reason))
    return all_of(*filters) if filters else None


def _build_options(args: argparse.Namespace) -> BuildOptions:
    return BuildOptions(
        anchor=args.anchor,
        max_plies=args.max_plies,
        sample=sample_from_args(args),
        shards=args.shards,
        workers=args.workers,
        progress=args.progress,
    )


def _build_flags_given(args: argparse.Namespace) -> List[str]:
    """Build and sampling options set on the command line."""
    defaults = {"shards": 1, "rating_side": "player", "result_perspective": "color"}
    names = [
        "inputs", "player", "anchor", "max_plies", "shards", "workers", "color", "date_from", "date_to",
        "min_rating", "max_rating", "rating_side", "min_opponent_rating", "time_control", "result",
        "result_perspective", "opponent", "end_reason",
    ]
    given = []
    for name in names:
        value = getattr(args, name)
        if value is not None and value != [] and value != defaults.get(name):
            given.append("--input" if name == "inputs" else "--" + name.replace("_", "-"))
    return given


def _obtain_tree(args: argparse.Namespace) -> Optional[ExplorerTree]:
    if getattr(args, "tree", None):
        given = _build_flags_given(args)
        if given:
            logger.error("--tree loads a finished snapshot; %s only apply when building from --input", ", ".join(given))
            return None
        return load_tree(Path(args.tree))
    if not args.inputs:
        logger.error("Provide games with --input or a snapshot with --tree")
        return None
    tree, report = _build_options(args).build(load_sources(args.inputs, args.player))
    logger.info("Built tree: %s", report.summary())
    return tree


def cmd_build(args: argparse.Namespace, console: Console) -> int:
    tree, report = _build_options(args).build(load_sources(args.inputs, args.player))
    console.print(report.summary(), markup=False)
    if not report.inserted:
        console.print("No games match the provided filters.")
        return 1
    out = Path(args.output)
    save_tree(tree, out)
    console.print(f"Saved tree with {len(tree)} nodes to {out}", markup=False)
    return 0


def cmd_stats(args: argparse.Namespace, console: Console) -> int:
    tree = _obtain_tree(args)
    if tree is None:
        return 2
    engine = QueryEngine(tree)
    result = engine.query(" ".join(args.moves), order_by=args.order_by, limit=args.top)
    if isinstance(result, PathNotFound):
        console.print(str(result), markup=False)
        return 1
    if args.json:
        sys.stdout.write(orjson.dumps(result.to_dict(), option=orjson.OPT_INDENT_2).decode() + "\n")
    else:
        render_view(console, result, branches=args.branches)
    return 0


def interactive_traverse(engine: QueryEngine, console: Console, *, top: int = DEFAULT_TOP, order_by: str = DEFAULT_ORDER) -> None:
    path: List[str] = []
    while True:
        result = engine.query(path, order_by=order_by, limit=top)
        if isinstance(result, PathNotFound):
            path = []
            continue
        console.print()
        render_view(console, result)
        moves = [c.move for c in result.children]
        if not moves:
            console.print("(b)ack, (r)eset, (q)uit")
        else:
            console.print("Choose a number or type a move, or b/r/q:")

        try:
            choice = input("> ").strip()
        except EOFError:
            break
        lowered = choice.lower()
        if lowered in {"q", "quit"}:
            break
        if lowered in {"r", "reset"}:
            path = []
            continue
        if lowered in {"b", "back"}:
            if path:
                path.pop()
            else:
                console.print("Already at root.")
            continue

        if choice.isdigit():
            num = int(choice)
            if 1 <= num <= len(moves):
                path.append(moves[num - 1])
            else:
                console.print("Invalid selection.")
            continue

        if choice:
            attempt = engine.query(path + [choice], limit=0)
            if isinstance(attempt, PathNotFound):
                console.print(f"No games continue with {escape(choice)} here.")
            else:
                path = list(attempt.path)
            continue

        console.print("Commands: number or move to dive, b=back, r=reset, q=quit")


def cmd_explore(args: argparse.Namespace, console: Console) -> int:
    tree = _obtain_tree(args)
    if tree is None:
        return 2
    if not tree.games:
        console.print("No games match the provided filters.")
        return 1
    console.print(f"Loaded {tree.games} games into the tree. Interactive traversal starting.")
    interactive_traverse(QueryEngine(tree), console, top=args.top, order_by=args.order_by)
    return 0


def _add_build_args(ap: argparse.ArgumentParser) -> None:
    ap.add_argument("--player", help="Your username; marks which color you played in each game")
    ap.add_argument("--anchor", type=PositionKey.from_fen, help="FEN of the position to explore from")
    ap.add_argument("--max-plies", type=int, help="Only record the first N plies after the anchor")
    ap.add_argument("--shards", type=int, default=1, help="Build N sub-trees in parallel and merge them")
    ap.add_argument("--workers", type=int, help="Worker threads for sharded builds")

    group = ap.add_argument_group("sampling")
    group.add_argument("--color", choices=["white", "black"], help="Color played by --player")
    group.add_argument("--date-from", type=dt.date.fromisoformat, help="YYYY-MM-DD, inclusive")
    group.add_argument("--date-to", type=dt.date.fromisoformat, help="YYYY-MM-DD, inclusive")
    group.add_argument("--min-rating", type=int)
    group.add_argument("--max-rating", type=int)
    group.add_argument("--rating-side", choices=RATING_SIDES, default="player")
    group.add_argument("--min-opponent-rating", type=int)
    group.add_argument("--time-control", choices=TIME_CONTROLS, action="append")
    group.add_argument("--result", choices=["1-0", "0-1", "1/2-1/2"])
    group.add_argument(
        "--result-perspective",
        choices=RESULT_PERSPECTIVES,
        default="color",
        help="Read --result as the board result or as the result for --player",
    )
    group.add_argument("--opponent")
    group.add_argument("--end-reason", help="Substring of the Termination tag")


def _add_query_args(ap: argparse.ArgumentParser) -> None:
    ap.add_argument("--input", "-i", dest="inputs", action="append", default=[], help="PGN file, directory, games JSON, or - for stdin")
    ap.add_argument("--tree", help="Load a saved tree snapshot instead of building one")
    ap.add_argument("--order-by", choices=list(ORDERINGS), default=DEFAULT_ORDER)
    ap.add_argument("--top", type=int, default=DEFAULT_TOP, help=f"How many next moves to display (default {DEFAULT_TOP})")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="opening-explorer", description="Explore the openings of any collection of chess games.")
    ap.add_argument("-v", "--verbose", action="count", default=0)
    ap.add_argument("-q", "--quiet", action="count", default=0)
    ap.add_argument("--progress", action="store_true", help="Show progress bars while building")
    sub = ap.add_subparsers(dest="command", required=True)

    build = sub.add_parser("build", help="Build a tree from games and save a snapshot")
    build.add_argument("inputs", nargs="+", help="PGN files, directories, games JSON, or - for stdin")
    build.add_argument("--output", "-o", default=str(DEFAULT_TREE_FILE), help=f"Snapshot path (default {DEFAULT_TREE_FILE})")
    _add_build_args(build)
    build.set_defaults(func=cmd_build)

    stats = sub.add_parser("stats", help="Show statistics for a line")
    stats.add_argument("moves", nargs="*", help="Moves from the anchor, e.g. e4 e5 Nf3")
    stats.add_argument("--branches", "-b", action="store_true", help="List the moves played next")
    stats.add_argument("--json", action="store_true", help="Print the result as JSON")
    _add_query_args(stats)
    _add_build_args(stats)
    stats.set_defaults(func=cmd_stats)

    explore = sub.add_parser("explore", help="Browse the tree interactively")
    _add_query_args(explore)
    _add_build_args(explore)
    explore.set_defaults(func=cmd_explore)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose - args.quiet)
    console = Console()
    try:
        return args.func(args, console)
    except (ExplorerError, OSError, orjson.JSONDecodeError) as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
