"""Command-line interface for symindex."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import time
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console
from rich.logging import RichHandler

from contract import TOOL_NAME, WATCH_LOCK
from contract.validation import validate_index_dir
from editor import open_in_editor
from index.engine import SymbolIndexEngine
from index.errors import (
    IndexMissingError,
    SymbolIndexError,
    WatchSessionActiveError,
)
from index.models import SYMBOL_KINDS
from index.status import collect_status
from index.utils import package_version
from query.engine import QueryEngine
from query.format import format_results
from settings.config import ConfigError, load_config, resolve_index_dir
from verify.verify import verify_freshness
from watch.session import WatchSession, inspect_lock, stop_watcher

if TYPE_CHECKING:
    from collections.abc import Sequence

    from index.models import SymbolKind, SymbolRecord
    from index.pipeline import FileFailure

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=TOOL_NAME, description="Incremental Ruby symbol index"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {package_version(TOOL_NAME)}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--root",
        default=".",
        help="Root of the Ruby codebase to index (default: .)",
    )
    parser.add_argument(
        "--progress",
        action="store_true",
        help="Show a progress bar while extracting",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("rebuild", help="Rebuild the index from scratch")
    subparsers.add_parser("update", help="Re-index changed files only")

    search_parser = subparsers.add_parser("search", help="Find symbol definitions")
    search_parser.add_argument("query", help="Symbol name or prefix")
    search_parser.add_argument(
        "-t",
        "--type",
        dest="kind",
        choices=SYMBOL_KINDS,
        default=None,
        help="Only return symbols of this kind",
    )
    search_parser.add_argument(
        "--open",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Open the first result in the editor (default: ask when interactive)",
    )

    subparsers.add_parser("status", help="Show index status")
    subparsers.add_parser("validate", help="Validate the persisted index")
    subparsers.add_parser(
        "verify", help="Verify the index matches the current sources"
    )
    subparsers.add_parser("watch", help="Keep the index updated as files change")
    subparsers.add_parser("stop", help="Stop a running watch session")

    return parser


def _configure_logging(*, verbose: bool) -> None:
    handler = RichHandler(
        console=Console(stderr=True), show_path=verbose, show_time=verbose
    )
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[handler],
        force=True,
    )
    logging.getLogger("watchdog").setLevel(logging.WARNING)


def _write_failures(failures: Sequence[FileFailure]) -> None:
    for failure in failures:
        sys.stderr.write(f"{failure.reason}: {failure.path}: {failure.message}\n")


def _refuse_if_watching(engine: SymbolIndexEngine) -> None:
    """Raise WatchSessionActiveError when a live watcher owns the index."""
    pid = inspect_lock(engine.store.lock_path)
    if pid is not None:
        raise WatchSessionActiveError(pid)


def _handle_rebuild(engine: SymbolIndexEngine) -> int:
    _refuse_if_watching(engine)
    t0 = time.perf_counter()
    result = engine.build()
    sys.stdout.write(f"Files processed: {result.files_processed}\n")
    sys.stdout.write(f"Symbols extracted: {result.symbols_extracted}\n")
    sys.stdout.write(f"Failures: {len(result.failures)}\n")
    sys.stdout.write(f"Index: {engine.index_dir}\n")
    sys.stdout.write(f"Elapsed: {time.perf_counter() - t0:.2f}s\n")
    _write_failures(result.failures)
    return 0


def _handle_update(engine: SymbolIndexEngine) -> int:
    _refuse_if_watching(engine)
    t0 = time.perf_counter()
    result = engine.update()
    if not result.updated:
        sys.stdout.write("Index is up to date\n")
        return 0

    changes = result.changes
    sys.stdout.write(f"Changed: {len(changes.changed)}\n")
    sys.stdout.write(f"New: {len(changes.new)}\n")
    sys.stdout.write(f"Deleted: {len(changes.deleted)}\n")
    sys.stdout.write(f"Symbols extracted: {result.symbols_extracted}\n")
    sys.stdout.write(f"Elapsed: {time.perf_counter() - t0:.2f}s\n")
    _write_failures(result.failures)
    return 0


def _choose_result(results: Sequence[SymbolRecord]) -> SymbolRecord | None:
    if len(results) == 1:
        return results[0]
    try:
        choice = input(f"Open [1-{len(results)}] (Enter for 1): ").strip()
    except EOFError:
        return None
    if not choice:
        return results[0]
    if choice.isdigit() and 1 <= int(choice) <= len(results):
        return results[int(choice) - 1]
    sys.stderr.write(f"Invalid choice: {choice}\n")
    return None


def _handle_search(
    engine: SymbolIndexEngine,
    query: str,
    kind: SymbolKind | None,
    open_mode: bool | None,
) -> int:
    query_engine = QueryEngine(engine.store)
    if not query_engine.index_exists():
        sys.stderr.write(
            f"No index found in {engine.index_dir}; run 'rebuild' first\n"
        )
        return 2

    t0 = time.perf_counter()
    results = query_engine.search(query, kind)
    elapsed_ms = (time.perf_counter() - t0) * 1000
    for line in format_results(query, results):
        sys.stdout.write(f"{line}\n")
    logger.debug("Search took %.1fms", elapsed_ms)

    if not results or open_mode is False:
        return 0

    if open_mode:
        selected: SymbolRecord | None = results[0]
    elif sys.stdin.isatty():
        selected = _choose_result(results)
    else:
        selected = None

    if selected is not None:
        sys.stdout.write(f"Opening {selected.file}:{selected.line}\n")
        opened = open_in_editor(
            engine.root / selected.file,
            selected.line,
            engine.config.editor_command,
            cwd=engine.root,
        )
        if not opened:
            return 1
    return 0


def _handle_status(engine: SymbolIndexEngine) -> int:
    status = collect_status(engine)
    sys.stdout.write(f"Index directory: {status.index_dir}\n")
    if not status.exists:
        sys.stdout.write("Index: not built; run 'rebuild' first\n")
        return 2

    sys.stdout.write(f"Built at: {status.built_at}\n")
    sys.stdout.write(f"Files: {status.total_files}\n")
    sys.stdout.write(f"Symbols: {status.total_symbols}\n")
    sys.stdout.write(f"{TOOL_NAME}: {status.tool_version}\n")
    sys.stdout.write(f"tree-sitter: {status.tree_sitter_version}\n")
    sys.stdout.write(f"tree-sitter-ruby: {status.grammar_version}\n")
    sys.stdout.write(f"Python: {status.python_version}\n")
    if status.watching:
        sys.stdout.write(f"Watcher: running (PID: {status.watcher_pid})\n")
    else:
        sys.stdout.write("Watcher: not running\n")
    if status.up_to_date:
        sys.stdout.write("Index is up to date\n")
    else:
        sys.stdout.write(
            f"{status.pending_changes} file(s) changed; run 'update'\n"
        )
    return 0


def _handle_validate(index_dir: Path) -> int:
    result = validate_index_dir(index_dir)
    for warning in result.warnings:
        sys.stderr.write(f"warning: {warning.location()}: {warning.message}\n")
    if result.errors:
        for error in result.errors:
            sys.stderr.write(f"{error.location()}: {error.message}\n")
        return 1
    return 0


def _handle_verify(engine: SymbolIndexEngine) -> int:
    result = verify_freshness(engine)
    if not result.ok:
        for label, paths in (
            ("missing", result.missing),
            ("extra", result.extra),
            ("stale", result.stale),
        ):
            for path in paths:
                sys.stderr.write(f"{label}: {path}\n")
        return 1
    return 0


def _handle_watch(engine: SymbolIndexEngine) -> int:
    logging.getLogger("watch").setLevel(logging.INFO)
    session = WatchSession(engine)

    def _request_stop(signum: int, _frame: object) -> None:
        logger.info("Received signal %d, stopping", signum)
        session.stop()

    previous = {
        signum: signal.signal(signum, _request_stop)
        for signum in (signal.SIGINT, signal.SIGTERM)
    }
    sys.stdout.write(f"Watching {engine.root} (Ctrl+C to stop)\n")
    sys.stdout.flush()
    try:
        session.run()
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)
    sys.stdout.write("Watch session stopped\n")
    return 0


def _handle_stop(index_dir: Path) -> int:
    outcome = stop_watcher(index_dir / WATCH_LOCK)
    messages = {
        "not_running": "No watch session is running",
        "stale": "Removed stale watch lock",
        "stopped": "Watch session stopped",
        "killed": "Watch session killed",
    }
    sys.stdout.write(f"{messages[outcome]}\n")
    return 0


def _run(args: argparse.Namespace) -> int:
    root = Path(args.root).expanduser().resolve()
    config = load_config(root)
    index_dir = resolve_index_dir(root, config.index_dir)

    if args.command == "validate":
        return _handle_validate(index_dir)

    if args.command == "stop":
        return _handle_stop(index_dir)

    show_progress = args.progress or args.verbose
    with SymbolIndexEngine(root, config, show_progress=show_progress) as engine:
        if args.command == "rebuild":
            return _handle_rebuild(engine)

        if args.command == "update":
            return _handle_update(engine)

        if args.command == "search":
            return _handle_search(engine, args.query, args.kind, args.open)

        if args.command == "status":
            return _handle_status(engine)

        if args.command == "verify":
            return _handle_verify(engine)

        if args.command == "watch":
            return _handle_watch(engine)

    raise AssertionError


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(verbose=args.verbose)

    try:
        return _run(args)
    except IndexMissingError as exc:
        sys.stderr.write(f"error: {exc}\n")
        return 2
    except WatchSessionActiveError as exc:
        sys.stderr.write(f"error: {exc}; use 'stop' to end it\n")
        return 1
    except (ConfigError, SymbolIndexError) as exc:
        sys.stderr.write(f"error: {exc}\n")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
