"""Per-item and per-section views of an unlock snapshot."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import List

from tadarruj.core.sequence import Section, Sequence
from tadarruj.core.state import UnlockSnapshot


@dataclass
class ItemState:
    """Lock and completion status of a single item."""

    global_index: int
    local_index: int
    title: str
    unlocked: bool
    completed: bool
    next_to_unlock: bool = False


@dataclass
class SectionState:
    section: Section
    locked: bool
    completed: bool


def item_states(sequence: Sequence, section_key: str, snapshot: UnlockSnapshot) -> List[ItemState]:
    section = sequence.section(section_key)
    start = sequence.start_index(section_key)
    states: List[ItemState] = []
    for offset, title in enumerate(section.items):
        global_index = start + offset
        states.append(
            ItemState(
                global_index=global_index,
                local_index=offset,
                title=title,
                unlocked=snapshot.is_unlocked(global_index),
                completed=snapshot.is_completed(global_index),
                next_to_unlock=snapshot.is_next_to_unlock(global_index),
            )
        )
    return states


def section_states(sequence: Sequence, snapshot: UnlockSnapshot) -> List[SectionState]:
    """A section opens once its first item is unlocked and is done once its last item is completed.

    Sections without items are always open and never done.
    """
    max_unlocked = snapshot.unlocked_count - 1
    last_completed = snapshot.last_completed_index if snapshot.last_completed_index is not None else -1
    states: List[SectionState] = []
    start = 0
    for section in sequence.sections:
        count = len(section.items)
        if count == 0:
            states.append(SectionState(section=section, locked=False, completed=False))
            continue
        end = start + count - 1
        states.append(
            SectionState(
                section=section,
                locked=max_unlocked < start,
                completed=last_completed >= end,
            )
        )
        start += count
    return states


def can_mark_complete(global_index: int, snapshot: UnlockSnapshot) -> bool:
    """Only the newest unlocked item, not yet completed, offers "mark as read"."""
    return (
        snapshot.is_unlocked(global_index)
        and not snapshot.is_completed(global_index)
        and global_index == snapshot.unlocked_count - 1
    )


def format_remaining(delta: timedelta) -> str:
    """Countdown text: ``H:MM:SS`` past one hour, ``MM:SS`` below."""
    total = max(int(delta.total_seconds()), 0)
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"
