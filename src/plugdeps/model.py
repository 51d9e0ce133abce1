# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass
class Job:
    """
    One external command bound to a working directory.

    A Job is reused by every stage of a pipeline run. `clean()` resets the
    command and the collected output but keeps `stderr`: once a Job has an
    error, the scheduler treats it as finished for the rest of the run.
    """
    cwd: Path
    command: list[str] = field(default_factory=list)
    exit_message: Optional[str] = None

    stdout: list[str] = field(default_factory=list)
    stderr: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return len(self.stderr) > 0

    @property
    def runnable(self) -> bool:
        """Whether the scheduler should spawn a process for this job."""
        return len(self.command) > 0 and not self.failed

    def clean(self) -> None:
        """Prepare for the next stage. Errors and warnings are kept."""
        self.command = []
        self.exit_message = None
        self.stdout = []

    def output(self) -> str:
        return _join_stream(self.stdout)

    def error(self) -> str:
        return _join_stream(self.stderr)

    def warning(self) -> str:
        return _join_stream(self.warnings)


def _join_stream(chunks: list[str]) -> str:
    return "".join(chunks).rstrip("\n")
