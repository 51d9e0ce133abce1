# errors.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence


class PlugdepsError(Exception):
    """Base class for every error raised by plugdeps."""


# ----------------------------------------------------------------------
# Fail-fast errors (raised)
# ----------------------------------------------------------------------

@dataclass
class ValidationError(PlugdepsError):
    """Malformed plugin declaration. Aborts the single add/normalize call."""
    field: str
    message: str

    def __str__(self) -> str:
        return f"`{self.field}` in plugin spec {self.message}"


@dataclass
class SnapshotParseError(PlugdepsError):
    """Checkout target could not be loaded into a name -> target mapping."""
    path: str | None
    reason: str

    def __str__(self) -> str:
        if self.path is None:
            return f"Invalid checkout target: {self.reason}"
        return f"Could not read snapshot {self.path}: {self.reason}"


# ----------------------------------------------------------------------
# Fail-soft errors (recorded and reported, never raised by the core)
# ----------------------------------------------------------------------

@dataclass
class ProcessExitError(PlugdepsError):
    code: int
    command: Sequence[str] = ()

    def __str__(self) -> str:
        return f"PROCESS EXITED WITH ERROR CODE {self.code}"


@dataclass
class StreamError(PlugdepsError):
    cwd: Path
    reason: str

    def __str__(self) -> str:
        return f"STREAM ERROR: {self.reason} (cwd={self.cwd})"


@dataclass
class HookError(PlugdepsError):
    plugin: str
    hook: str
    error: BaseException

    def __str__(self) -> str:
        return f"Error executing {self.hook} hook in `{self.plugin}`:\n{self.error}"
