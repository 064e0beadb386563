from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Optional

from tadarruj.core.notifier import Callback, ProgressNotifier
from tadarruj.core.state import (
    StateDecodeError,
    UnlockSnapshot,
    UnlockState,
    as_utc,
    decode_state,
    encode_state,
)
from tadarruj.core.storage import KeyValueBackend

logger = logging.getLogger(__name__)

DEFAULT_UNLOCK_INTERVAL = timedelta(minutes=5)


class UnlockProgressEngine:
    """Tracks a list of items that unlock one at a time.

    The next item unlocks once ``unlock_interval`` has passed since the latest
    completed item was completed. The frontier (``unlocked_count``) only moves
    forward with time; it is clamped down only when the caller reports fewer
    items than before.

    Every public call runs under one lock. The record is saved while the lock
    is held and observers are notified after it is released, so a listener may
    call back into the engine.
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        unlock_interval: timedelta = DEFAULT_UNLOCK_INTERVAL,
        notifier: Optional[ProgressNotifier] = None,
    ) -> None:
        if unlock_interval <= timedelta(0):
            raise ValueError(f"unlock_interval must be positive, got {unlock_interval}")
        self._backend = backend
        self._unlock_interval = unlock_interval
        self._notifier = notifier if notifier is not None else ProgressNotifier()
        self._lock = threading.Lock()
        self._state = self._load()
        self._sanitize(None)

    @property
    def unlock_interval(self) -> timedelta:
        return self._unlock_interval

    @property
    def notifier(self) -> ProgressNotifier:
        return self._notifier

    def subscribe(self, callback: Callback) -> Callback:
        return self._notifier.subscribe(callback)

    def unsubscribe(self, callback: Callback) -> None:
        self._notifier.unsubscribe(callback)

    def snapshot(self, total_items: int, now: Optional[datetime] = None) -> UnlockSnapshot:
        _check_count("total_items", total_items)
        now = _resolve_now(now)
        with self._lock:
            before = self._state.copy()
            self._refresh_unlock(total_items, now)
            self._sanitize(total_items)
            changed = self._state != before
            if changed:
                self._persist()
            snapshot = self._build_snapshot(total_items)
        if changed:
            self._notifier.notify()
        return snapshot

    def mark_completed(self, index: int, total_items: int, now: Optional[datetime] = None) -> bool:
        """Record *index* as the latest completed item.

        Locked items and items behind the current completion are ignored.
        Returns True when the completion record was updated.
        """
        _check_count("index", index)
        _check_count("total_items", total_items)
        now = _resolve_now(now)
        recorded = False
        with self._lock:
            before = self._state.copy()
            self._refresh_unlock(total_items, now)
            self._sanitize(total_items)

            if total_items > 0 and index < self._state.unlocked_count:
                previous = self._state.last_completed_index
                if previous is None or index >= previous:
                    self._state.last_completed_index = index
                    self._state.last_completion_date = now
                    recorded = True
                    self._sanitize(total_items)
                    logger.debug("Recorded completion of item %d at %s", index, now.isoformat())
            elif total_items > 0:
                logger.debug(
                    "Ignoring completion of locked item %d (unlocked: %d)",
                    index,
                    self._state.unlocked_count,
                )

            changed = self._state != before
            if changed:
                self._persist()
        if changed:
            self._notifier.notify()
        return recorded

    def unlock_all(self, total_items: int) -> None:
        """Open every item at once, bypassing the timer."""
        _check_count("total_items", total_items)
        with self._lock:
            before = self._state.copy()
            self._state.unlocked_count = max(self._state.unlocked_count, total_items)
            self._sanitize(total_items)
            changed = self._state != before
            if changed:
                self._persist()
        if changed:
            self._notifier.notify()

    def reset(self) -> None:
        """Forget all progress. Only the first item stays unlocked."""
        with self._lock:
            self._state = UnlockState()
            self._persist()
        logger.info("Unlock progress reset")
        self._notifier.notify()

    # -- called with the lock held -------------------------------------------------

    def _refresh_unlock(self, total_items: int, now: datetime) -> bool:
        state = self._state
        if total_items <= 0 or not state.has_completion:
            return False
        next_index = state.last_completed_index + 1
        if next_index >= total_items:
            return False
        if state.unlocked_count > next_index:
            return False
        # a clock moved backwards gives a negative elapsed time and never unlocks
        if now - state.last_completion_date < self._unlock_interval:
            return False
        state.unlocked_count = min(total_items, next_index + 1)
        logger.debug("Unlocked item %d after %s", next_index, self._unlock_interval)
        return True

    def _sanitize(self, total_items: Optional[int]) -> None:
        state = self._state
        if total_items is None:
            if state.unlocked_count < 1:
                state.unlocked_count = 1
        else:
            minimum = 1 if total_items > 0 else 0
            state.unlocked_count = min(max(state.unlocked_count, minimum), total_items)
            if state.last_completed_index is not None and state.last_completed_index >= total_items:
                if total_items > 0:
                    state.last_completed_index = total_items - 1
                else:
                    state.last_completed_index = None
        if state.last_completed_index is None or state.last_completion_date is None:
            state.last_completed_index = None
            state.last_completion_date = None

    def _build_snapshot(self, total_items: int) -> UnlockSnapshot:
        state = self._state
        return UnlockSnapshot(
            unlocked_count=state.unlocked_count,
            last_completed_index=state.last_completed_index,
            last_completion_date=state.last_completion_date,
            next_unlock_date=self._next_unlock_date(total_items),
        )

    def _next_unlock_date(self, total_items: int) -> Optional[datetime]:
        state = self._state
        if total_items <= 0 or not state.has_completion:
            return None
        if state.unlocked_count > state.last_completed_index + 1:
            return None
        if state.unlocked_count >= total_items:
            return None
        return state.last_completion_date + self._unlock_interval

    def _persist(self) -> None:
        try:
            self._backend.save(encode_state(self._state))
        except (OSError, ValueError) as e:
            # the in-memory state stays authoritative until the next successful save
            logger.warning("Could not save unlock progress: %s", e)

    def _load(self) -> UnlockState:
        try:
            data = self._backend.load()
        except OSError as e:
            logger.warning("Could not load unlock progress: %s", e)
            return UnlockState()
        if data is None:
            return UnlockState()
        try:
            return decode_state(data)
        except StateDecodeError as e:
            logger.warning("Discarding unreadable unlock progress: %s", e)
            return UnlockState()


def _resolve_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    return as_utc(now)


def _check_count(name: str, value: int) -> None:
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {value}")
