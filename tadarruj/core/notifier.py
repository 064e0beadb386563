"""Change notification for progress observers."""

from __future__ import annotations

import logging
from typing import Callable, List

from PySide6.QtCore import QObject, Qt, Signal

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


class ProgressNotifier(QObject):
    """Broadcasts "progress changed" to any number of listeners.

    Plain callables are connected directly, so they run on the emitting thread
    and no Qt event loop is needed.
    """

    progress_changed = Signal()

    def __init__(self) -> None:
        super().__init__()
        self._callbacks: List[Callback] = []

    def subscribe(self, callback: Callback) -> Callback:
        self.progress_changed.connect(callback, Qt.ConnectionType.DirectConnection)
        self._callbacks.append(callback)
        return callback

    def unsubscribe(self, callback: Callback) -> None:
        # PySide only warns on disconnecting an unknown slot
        if callback not in self._callbacks:
            logger.debug("Callback %r was not subscribed", callback)
            return
        self._callbacks.remove(callback)
        self.progress_changed.disconnect(callback)

    def notify(self) -> None:
        self.progress_changed.emit()
