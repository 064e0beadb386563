from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class StateDecodeError(ValueError):
    """Raised when persisted progress bytes cannot be turned back into a state."""


def as_utc(moment: datetime) -> datetime:
    """Return *moment* as an aware datetime; naive values are taken as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


@dataclass
class UnlockState:
    """The persisted progress record.

    ``last_completed_index`` and ``last_completion_date`` are either both set
    or both ``None``.
    """

    unlocked_count: int = 1
    last_completed_index: Optional[int] = None
    last_completion_date: Optional[datetime] = None

    @property
    def has_completion(self) -> bool:
        return self.last_completed_index is not None and self.last_completion_date is not None

    def copy(self) -> "UnlockState":
        return replace(self)


@dataclass(frozen=True)
class UnlockSnapshot:
    """Read-only view of the progress handed to callers."""

    unlocked_count: int
    last_completed_index: Optional[int]
    last_completion_date: Optional[datetime]
    next_unlock_date: Optional[datetime]

    def is_unlocked(self, index: int) -> bool:
        return 0 <= index < self.unlocked_count

    def is_completed(self, index: int) -> bool:
        last = self.last_completed_index if self.last_completed_index is not None else -1
        return 0 <= index <= last

    def is_next_to_unlock(self, index: int) -> bool:
        """True for the first locked item, the one the countdown refers to."""
        return not self.is_unlocked(index) and index == self.unlocked_count

    def remaining(self, now: datetime) -> Optional[timedelta]:
        """Time left until the next unlock, clamped at zero; ``None`` if nothing is pending."""
        if self.next_unlock_date is None:
            return None
        left = self.next_unlock_date - as_utc(now)
        return max(left, timedelta(0))


def encode_state(state: UnlockState) -> bytes:
    payload = {
        "unlockedCount": state.unlocked_count,
        "lastCompletedIndex": state.last_completed_index,
        "lastCompletionDate": (
            state.last_completion_date.isoformat() if state.last_completion_date is not None else None
        ),
    }
    return json.dumps(payload).encode("utf-8")


def decode_state(data: bytes) -> UnlockState:
    """Parse bytes written by :func:`encode_state`.

    Dates may also be numbers, always read as seconds since the Unix epoch
    (1970-01-01 UTC). Records counting from another reference date, such as
    the 2001-01-01 default of Apple's JSONEncoder, must be converted first. A
    record holding only one half of the completion pair is repaired by
    dropping both halves.
    """
    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise StateDecodeError(f"progress record is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise StateDecodeError("progress record must be a JSON object")

    unlocked_count = _read_int(payload, "unlockedCount", default=1)
    last_index = _read_int(payload, "lastCompletedIndex", default=None)
    if last_index is not None and last_index < 0:
        raise StateDecodeError(f"lastCompletedIndex must not be negative, got {last_index}")
    last_date = _read_date(payload.get("lastCompletionDate"))

    if (last_index is None) != (last_date is None):
        logger.warning("Dropping half-written completion record: %r", payload)
        last_index = None
        last_date = None

    return UnlockState(
        unlocked_count=unlocked_count,
        last_completed_index=last_index,
        last_completion_date=last_date,
    )


def _read_int(payload: Dict[str, Any], key: str, default: Optional[int]) -> Optional[int]:
    value = payload.get(key)
    if value is None:
        return default
    # bool is an int subclass; a JSON true/false here means a corrupt record
    if isinstance(value, bool) or not isinstance(value, int):
        raise StateDecodeError(f"{key} must be an integer, got {value!r}")
    return value


def _read_date(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise StateDecodeError(f"lastCompletionDate must be a timestamp, got {value!r}")
    if isinstance(value, (int, float)):
        # seconds since 1970-01-01 UTC only
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise StateDecodeError(f"lastCompletionDate out of range: {value!r}") from e
    if isinstance(value, str):
        text = value.strip()
        # fromisoformat only learned the "Z" suffix in Python 3.11
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return as_utc(datetime.fromisoformat(text))
        except ValueError as e:
            raise StateDecodeError(f"lastCompletionDate is not ISO-8601: {value!r}") from e
    raise StateDecodeError(f"lastCompletionDate must be a timestamp, got {value!r}")
