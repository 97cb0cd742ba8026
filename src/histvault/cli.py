"""
histvault command line

Usage:
    histvault collect [PATHS...] [--quiet]
    histvault search [QUERY] [--since DATE] [--until DATE] [--limit N] [--plain]
    histvault wizard --query TEXT [--cwd DIR] [--timeout SECONDS] [--json]
    histvault wizard --query TEXT --confirm COMMAND
    histvault cache [--list | --clear | --delete QUERY]
    histvault stats
    histvault reindex

Global options (before the subcommand): --db PATH, --config FILE, --log-level LEVEL

stdout carries only results (a selected or generated command is read back
by shell widgets); diagnostics go to stderr.
"""

import argparse
import json
import sys
from typing import List, Optional

from . import __version__
from .agent.core.command_cache import CommandCache
from .agent.core.llm_client import LLMClient
from .agent.core.schemas import WizardRequest
from .agent.core.wizard import CommandWizard
from .config_loader import config
from .exceptions import HistVaultError
from .logging_config import setup_logging
from .main import CollectionPipeline, FileStatus
from .services.database import HistoryStore
from .services.fuzzy_finder import FuzzyFinder
from .services.query_service import QueryService, format_timestamp

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def _open_store(args) -> HistoryStore:
    return HistoryStore(args.db)


# ============================================================
# COMMANDS
# ============================================================

def cmd_collect(args) -> int:
    with _open_store(args) as store:
        pipeline = CollectionPipeline(store)
        paths = args.paths or pipeline.default_paths()

        if not args.quiet:
            print(f"Collecting from {len(paths)} path(s) into DB: {store.db_path}")

        summary = pipeline.run(paths)

    for outcome in summary.outcomes:
        if outcome.status == FileStatus.INGESTED:
            if not args.quiet:
                print(f"{outcome.path}: {outcome.parsed} parsed, {outcome.inserted} new, {outcome.skipped} skipped")
        elif outcome.status == FileStatus.MISSING:
            print(f"{outcome.path}: not found", file=sys.stderr)
        else:
            print(f"{outcome.path}: error: {outcome.error}", file=sys.stderr)

    if not summary.success:
        print(f"error: collection stopped: {summary.store_error}", file=sys.stderr)
        return EXIT_FAILURE

    if not args.quiet:
        print("\nDatabase stats:")
        print(f"  Total commands: {summary.stats.total_records}")
        print(f"  Total sources: {summary.stats.distinct_origins}")
        print(f"\nCollection complete: {summary.total_inserted} new, {summary.total_skipped} skipped")

    return EXIT_OK


def cmd_search(args) -> int:
    with _open_store(args) as store:
        service = QueryService(store, default_limit=config.get('search.default_limit', 500))
        records = service.search(args.query, since=args.since, until=args.until, limit=args.limit)

    if args.plain:
        for record in records:
            print(f"{format_timestamp(record.timestamp)}\t{record.origin}\t{record.text}")
        return EXIT_OK

    selected = FuzzyFinder().select(records)
    if selected:
        print(selected)
    return EXIT_OK


def cmd_wizard(args) -> int:
    with _open_store(args) as store:
        cache = CommandCache(store)

        if args.confirm is not None:
            entry = CommandWizard(store, cache, backend=None).confirm(args.query, args.confirm)
            print(f"Cached: {entry.normalized_query} -> {entry.command} (used {entry.run_count}x)")
            return EXIT_OK

        wizard = CommandWizard(store, cache, backend=LLMClient(), timeout=args.timeout)
        result = wizard.generate(WizardRequest(query=args.query, cwd=args.cwd))

    if not result.success:
        print(f"error: {result.error}", file=sys.stderr)
        return EXIT_FAILURE

    if args.json:
        print(json.dumps(result.to_output()))
    else:
        print(result.command)
    return EXIT_OK


def cmd_cache(args) -> int:
    with _open_store(args) as store:
        cache = CommandCache(store)

        if args.clear:
            removed = cache.clear()
            print(f"Removed {removed} cached command(s)")
            return EXIT_OK

        if args.delete is not None:
            if not cache.delete(args.delete):
                print(f"error: no cached command for: {args.delete}", file=sys.stderr)
                return EXIT_FAILURE
            return EXIT_OK

        for entry in cache.list(limit=args.limit):
            print(f"{entry.original_query}\t{entry.command}\t{entry.run_count}\t{format_timestamp(entry.last_used)}")

    return EXIT_OK


def cmd_stats(args) -> int:
    with _open_store(args) as store:
        stats = store.stats()

    print(f"Total commands: {stats.total_records}")
    print(f"Total sources: {stats.distinct_origins}")
    for origin, count in stats.per_origin_counts.items():
        print(f"  {count:>8}  {origin}")
    return EXIT_OK


def cmd_reindex(args) -> int:
    with _open_store(args) as store:
        if not store.rebuild_text_index():
            print("error: full-text index unavailable (SQLite built without FTS5)", file=sys.stderr)
            return EXIT_FAILURE

    print("Full-text index rebuilt")
    return EXIT_OK


# ============================================================
# PARSER
# ============================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="histvault",
        description="Shell history aggregation, search and command wizard"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--db", help="Database file (default: database.path from settings)")
    parser.add_argument("--config", help="Extra settings file merged over the defaults")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level, also applied to the console"
    )

    subparsers = parser.add_subparsers(dest="command")

    collect_parser = subparsers.add_parser("collect", help="Ingest history files")
    collect_parser.add_argument("paths", nargs="*", help="History files or directories (default: ~/.histories)")
    collect_parser.add_argument("--quiet", "-q", action="store_true", help="Only report problems")
    collect_parser.set_defaults(handler=cmd_collect)

    search_parser = subparsers.add_parser("search", help="Search history and pick a command with fzf")
    search_parser.add_argument("query", nargs="?", default=None, help="Search terms (prefix matched)")
    search_parser.add_argument("--since", help="YYYY-MM-DD or 'YYYY-MM-DD HH:MM:SS' (inclusive)")
    search_parser.add_argument("--until", help="YYYY-MM-DD or 'YYYY-MM-DD HH:MM:SS' (inclusive)")
    search_parser.add_argument("--limit", type=int, default=None, help="Maximum results (default 500)")
    search_parser.add_argument("--plain", action="store_true", help="Print results instead of opening fzf")
    search_parser.set_defaults(handler=cmd_search)

    wizard_parser = subparsers.add_parser("wizard", help="Turn a request into a shell command")
    wizard_parser.add_argument("--query", required=True, help="What you want to do")
    wizard_parser.add_argument("--cwd", help="Current directory, added to the prompt")
    wizard_parser.add_argument("--timeout", type=float, default=None, help="Generation timeout in seconds")
    wizard_parser.add_argument("--json", action="store_true", help="Print the full result as JSON")
    wizard_parser.add_argument("--confirm", metavar="COMMAND", help="Cache COMMAND as the answer to --query")
    wizard_parser.set_defaults(handler=cmd_wizard)

    cache_parser = subparsers.add_parser("cache", help="Inspect or edit the wizard cache")
    cache_group = cache_parser.add_mutually_exclusive_group()
    cache_group.add_argument("--list", action="store_true", help="List cached commands (default)")
    cache_group.add_argument("--clear", action="store_true", help="Remove all cached commands")
    cache_group.add_argument("--delete", metavar="QUERY", help="Remove the cached command for QUERY")
    cache_parser.add_argument("--limit", type=int, default=50, help="Entries to list")
    cache_parser.set_defaults(handler=cmd_cache)

    stats_parser = subparsers.add_parser("stats", help="Show record counts")
    stats_parser.set_defaults(handler=cmd_stats)

    reindex_parser = subparsers.add_parser("reindex", help="Rebuild the full-text index")
    reindex_parser.set_defaults(handler=cmd_reindex)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not getattr(args, "handler", None):
        parser.print_help()
        return EXIT_OK

    try:
        if args.config:
            config.load_file(args.config)
        setup_logging(log_level=args.log_level, console_level=args.log_level)

        return args.handler(args)
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED
    except (HistVaultError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
