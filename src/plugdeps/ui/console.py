"""Console output and progress notification for plugdeps."""

from __future__ import annotations

import sys
import threading
from enum import Enum
from typing import Optional, Protocol


class Level(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Notifier(Protocol):
    """Sink for progress and problem messages. The core never reads from it."""

    def notify(self, message: str, level: Level = Level.INFO) -> None:
        ...


class MemoryNotifier:
    """Collects messages instead of printing them."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, Level]] = []
        self._lock = threading.Lock()

    def notify(self, message: str, level: Level = Level.INFO) -> None:
        with self._lock:
            self.messages.append((message, level))

    def by_level(self, level: Level) -> list[str]:
        return [m for m, lvl in self.messages if lvl == level]


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug
        self._lock = threading.Lock()

    def notify(self, message: str, level: Level = Level.INFO) -> None:
        """Print a progress or problem message. Safe to call from worker threads."""
        stream = sys.stdout if level == Level.INFO else sys.stderr
        prefix = "(plugdeps) " if level == Level.INFO else f"(plugdeps) {level.value.upper()}: "
        with self._lock:
            print(f"{prefix}{message}", file=stream, flush=True)

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}")
        print("-" * len(title))

    def print_plugin(self, name: str, status: str, detail: str = "") -> None:
        """Print one plugin status line."""
        line = f"  {name}: {status}"
        if detail:
            line += f" ({detail})"
        print(line)

    def print_log(self, log: str) -> None:
        """Print an indented commit log."""
        for line in log.splitlines():
            print(f"    {line}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
