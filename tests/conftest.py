from __future__ import annotations

from datetime import timedelta
from typing import List

import pytest

from tadarruj.core.engine import UnlockProgressEngine
from tadarruj.core.storage import MemoryBackend


@pytest.fixture()
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture()
def engine(backend: MemoryBackend) -> UnlockProgressEngine:
    """Engine with a five minute unlock interval over an in-memory store."""
    return UnlockProgressEngine(backend, timedelta(minutes=5))


@pytest.fixture()
def events(engine: UnlockProgressEngine) -> List[str]:
    """One entry per change notification fired by ``engine``."""
    received: List[str] = []
    engine.subscribe(lambda: received.append("changed"))
    return received
