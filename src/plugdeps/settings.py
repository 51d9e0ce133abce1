from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .scheduler import DEFAULT_JOB_TIMEOUT, default_concurrency

DEFAULT_HOME = "~/.local/share/plugdeps"
DEFAULT_PLUGINS_FILE = "plugdeps_plugins.py"


def _int_env(name: str) -> Optional[int]:
    value = os.environ.get(name)
    return int(value) if value else None


def _float_env(name: str, default: float) -> float:
    value = os.environ.get(name)
    return float(value) if value else default


@dataclass(frozen=True)
class Settings:
    """Where plugdeps keeps its data and how hard it may work."""
    home: Path = field(default_factory=lambda: Path(DEFAULT_HOME).expanduser())
    concurrency: int = field(default_factory=default_concurrency)
    job_timeout: float = DEFAULT_JOB_TIMEOUT

    @property
    def plugins_dir(self) -> Path:
        return self.home / "opt"

    @property
    def rollback_dir(self) -> Path:
        return self.home / "rollback"

    @property
    def snapshot_path(self) -> Path:
        return self.home / "snapshot.json"

    def plugin_path(self, name: str) -> Path:
        return self.plugins_dir / name

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            home=Path(os.environ.get("PLUGDEPS_HOME", DEFAULT_HOME)).expanduser(),
            concurrency=_int_env("PLUGDEPS_CONCURRENCY") or default_concurrency(),
            job_timeout=_float_env("PLUGDEPS_JOB_TIMEOUT", DEFAULT_JOB_TIMEOUT),
        )
