"""Command line entry point for collection maintenance."""
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from vocab_builder.config import ensure_directories, settings
from vocab_builder.errors import ImportValidationError
from vocab_builder.logging_config import setup_logging
from vocab_builder.models.base import SessionLocal, init_db
from vocab_builder.monitoring import start_monitoring
from vocab_builder.services.stats_service import build_overall_stats
from vocab_builder.services.transfer_service import ImportPolicy, export_to_file, import_snapshot
from vocab_builder.services.word_store import WordStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vocab_builder",
        description="Spaced repetition vocabulary collection tools",
        epilog="Use 'vocab_builder <command> --help' for command-specific help",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    export_parser = subparsers.add_parser("export", help="Write the collection to a JSON snapshot")
    export_parser.add_argument("--output", type=Path, default=None, help="Target file (default: exports dir)")

    import_parser = subparsers.add_parser("import", help="Load a JSON snapshot into the collection")
    import_parser.add_argument("snapshot", type=Path, help="Snapshot file to import")
    import_parser.add_argument(
        "--policy",
        choices=[policy.value for policy in ImportPolicy],
        default=ImportPolicy.MERGE.value,
        help="replace: wipe then load; merge: keep existing records on id clashes",
    )

    subparsers.add_parser("stats", help="Show collection statistics")
    return parser


def export_command(store: WordStore, args: argparse.Namespace) -> int:
    path = export_to_file(store, args.output)
    print(f"Exported to {path}")
    return 0


def import_command(store: WordStore, args: argparse.Namespace) -> int:
    try:
        result = import_snapshot(store, args.snapshot.read_bytes(), ImportPolicy(args.policy))
    except OSError as e:
        print(f"Cannot read {args.snapshot}: {e}", file=sys.stderr)
        return 1
    except ImportValidationError as e:
        print(f"Import rejected: {e.reason}", file=sys.stderr)
        return 1
    print(
        f"Imported ({result.policy.value}): {result.topics_written} topics, {result.words_written} words; "
        f"collection now has {result.topics_total} topics and {result.words_total} words"
    )
    return 0


def stats_command(store: WordStore, args: argparse.Namespace) -> int:
    stats = build_overall_stats(store.get_all_words())
    for status, count in stats.by_status.items():
        print(f"{status.value}: {count}")
    print(f"Due today: {stats.due_today}")
    print(f"Due this week: {stats.due_week}")
    if stats.hardest:
        print("Hardest words:")
        for word in stats.hardest:
            print(f"  {word.word_or_phrase} (lapses {word.lapses}, wrong {word.wrong_count})")
    return 0


COMMANDS = {
    "export": export_command,
    "import": import_command,
    "stats": stats_command,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    command = COMMANDS.get(args.command)
    if command is None:
        parser.print_help()
        return 1

    ensure_directories()
    setup_logging(f"Running vocab_builder {args.command} ...")
    if settings.monitoring.enabled:
        start_monitoring(settings.monitoring.port)

    init_db()
    db = SessionLocal()
    try:
        return command(WordStore(db), args)
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
