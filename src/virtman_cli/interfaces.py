# virtman — Interactive Virtual Machine Manager Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Protocol definitions for dependency injection.

These interfaces separate the line editor from the real terminal, and the
REPL loop from history persistence and process execution, so tests can
substitute in-memory fakes.
"""

from __future__ import annotations

from collections.abc import Sequence
from contextlib import AbstractContextManager
from typing import Any, Protocol

from .terminal import KeyEvent


class Terminal(Protocol):
    """Protocol for the terminal device driven by the line editor."""

    def enter_raw_mode(self) -> AbstractContextManager[Any]:
        """Disable line buffering and echo until the context exits."""
        ...

    def cursor_position(self) -> tuple[int, int]:
        """Return the 1-based (col, row) of the cursor."""
        ...

    def move_to(self, col: int, row: int) -> None:
        """Move the cursor to an absolute 1-based position."""
        ...

    def move_left(self, n: int) -> None:
        """Move the cursor left by n columns."""
        ...

    def move_right(self, n: int) -> None:
        """Move the cursor right by n columns."""
        ...

    def clear_to_end_of_screen(self) -> None:
        """Erase everything after the cursor."""
        ...

    def write(self, text: str) -> None:
        """Write text at the cursor and flush."""
        ...

    def read_key(self) -> KeyEvent:
        """Block until the next key event arrives."""
        ...


class HistoryStore(Protocol):
    """Protocol for the persisted command history."""

    def load(self) -> list[str]:
        """Read the persisted entries, oldest first."""
        ...

    def append(self, line: str) -> None:
        """Append one entry and persist it immediately."""
        ...

    def __len__(self) -> int:
        ...

    def __getitem__(self, index: int) -> str:
        ...


class Executor(Protocol):
    """Protocol for running external programs on the real terminal."""

    def run_tty(self, argv: Sequence[str], cwd: str | None = None) -> Any:
        """Run argv attached to the terminal.

        Returns:
            TTYResult (exit_code, started_at, duration_ms, error)
        """
        ...


class ConfigModel(Protocol):
    """Protocol for configuration access."""

    @property
    def system(self) -> dict[str, Any]:
        """System configuration."""
        ...

    @property
    def qemu(self) -> dict[str, Any]:
        """QEMU binaries and arguments."""
        ...

    def get_path(self, path: str, default: Any = None) -> Any:
        """Dotted lookup into the configuration."""
        ...
