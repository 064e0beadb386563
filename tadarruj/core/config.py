from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Mapping, Optional

from tadarruj.core.engine import DEFAULT_UNLOCK_INTERVAL
from tadarruj.core.sequence import default_sequences_dir
from tadarruj.core.storage import DEFAULT_STORAGE_KEY, default_progress_file


@dataclass(frozen=True)
class Settings:
    """Runtime configuration, read from ``TADARRUJ_*`` environment variables."""

    unlock_interval: timedelta = DEFAULT_UNLOCK_INTERVAL
    progress_file: Path = field(default_factory=default_progress_file)
    storage_key: str = DEFAULT_STORAGE_KEY
    sequences_dir: Path = field(default_factory=default_sequences_dir)
    unlock_all: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        defaults = cls()

        interval = defaults.unlock_interval
        raw_interval = env.get("TADARRUJ_UNLOCK_INTERVAL")
        if raw_interval:
            try:
                seconds = float(raw_interval)
            except ValueError:
                raise ValueError(
                    f"TADARRUJ_UNLOCK_INTERVAL must be a number of seconds, got {raw_interval!r}"
                ) from None
            if seconds <= 0:
                raise ValueError(f"TADARRUJ_UNLOCK_INTERVAL must be positive, got {raw_interval!r}")
            interval = timedelta(seconds=seconds)

        progress_file = defaults.progress_file
        if env.get("TADARRUJ_PROGRESS_FILE"):
            progress_file = Path(env["TADARRUJ_PROGRESS_FILE"]).expanduser()

        sequences_dir = defaults.sequences_dir
        if env.get("TADARRUJ_SEQUENCES_DIR"):
            sequences_dir = Path(env["TADARRUJ_SEQUENCES_DIR"]).expanduser()

        return cls(
            unlock_interval=interval,
            progress_file=progress_file,
            storage_key=env.get("TADARRUJ_STORAGE_KEY") or defaults.storage_key,
            sequences_dir=sequences_dir,
            unlock_all=env.get("TADARRUJ_UNLOCK_ALL") == "1",
            log_level=(env.get("TADARRUJ_LOG_LEVEL") or defaults.log_level).upper(),
        )
