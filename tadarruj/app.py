"""Application entry point and composition root for the unlock tracker."""

import argparse
import logging
import sys
from datetime import datetime, timezone
from typing import List, Optional

from tadarruj.core.config import Settings
from tadarruj.core.engine import UnlockProgressEngine
from tadarruj.core.notifier import ProgressNotifier
from tadarruj.core.projection import can_mark_complete, format_remaining, item_states, section_states
from tadarruj.core.sequence import Sequence, SequenceRepository
from tadarruj.core.storage import JsonFileBackend

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """Configure application-wide logging with a standard format."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def build_engine(settings: Settings, sequence_key: Optional[str] = None) -> UnlockProgressEngine:
    """Wire one engine per sequence; all of them share the progress file."""
    key = settings.storage_key if sequence_key is None else f"{settings.storage_key}.{sequence_key}"
    backend = JsonFileBackend(settings.progress_file, key=key)
    return UnlockProgressEngine(backend, settings.unlock_interval, notifier=ProgressNotifier())


def _print_status(engine: UnlockProgressEngine, sequence: Sequence, now: datetime) -> None:
    snapshot = engine.snapshot(sequence.total_items, now)
    print(f"{sequence.title} ({snapshot.unlocked_count}/{sequence.total_items} unlocked)")
    for section_state in section_states(sequence, snapshot):
        section = section_state.section
        mark = "done" if section_state.completed else ("locked" if section_state.locked else "open")
        print(f"  [{mark}] {section.title}")
        for item in item_states(sequence, section.key, snapshot):
            if item.completed:
                flag = "x"
            elif item.unlocked:
                flag = "*" if can_mark_complete(item.global_index, snapshot) else " "
            else:
                flag = "-"
            print(f"    {flag} {item.local_index}: {item.title}")
    remaining = snapshot.remaining(now)
    if remaining is not None:
        print(f"Next unlock in {format_remaining(remaining)}")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tadarruj", description="Time-gated reading progress.")
    sub = parser.add_subparsers(dest="command", required=True)

    status = sub.add_parser("status", help="show what is unlocked")
    status.add_argument("sequence", nargs="?", help="sequence key (defaults to the first one)")

    complete = sub.add_parser("complete", help="mark an item as read")
    complete.add_argument("sequence")
    complete.add_argument("section")
    complete.add_argument("index", type=int, help="item position inside the section")

    reset = sub.add_parser("reset", help="forget all progress of a sequence")
    reset.add_argument("sequence", nargs="?")
    return parser


def run(argv: Optional[List[str]] = None, settings: Optional[Settings] = None) -> int:
    """Parse *argv*, run one command and return the exit code."""
    args = _build_parser().parse_args(argv)
    if settings is None:
        settings = Settings.from_env()
    configure_logging(settings.log_level)

    try:
        repository = SequenceRepository(settings.sequences_dir)
        sequence = repository.get(args.sequence) if args.sequence else repository.all()[0]
    except (FileNotFoundError, ValueError) as e:
        logger.error("Could not load sequences: %s", e)
        return 2
    except KeyError:
        logger.error("Unknown sequence: %s", args.sequence)
        return 2

    engine = build_engine(settings, sequence.key)
    now = datetime.now(timezone.utc)
    if settings.unlock_all:
        engine.unlock_all(sequence.total_items)

    if args.command == "reset":
        engine.reset()
        print(f"Progress for {sequence.title} cleared")
        return 0

    if args.command == "complete":
        try:
            index = sequence.global_index(args.section, args.index)
        except (KeyError, IndexError) as e:
            logger.error("No such item: %s", e)
            return 2
        if not engine.mark_completed(index, sequence.total_items, now):
            print(f"Item {args.index} of {args.section} is locked or already behind your progress")
            return 1

    _print_status(engine, sequence, now)
    return 0


def main() -> None:
    sys.exit(run())
