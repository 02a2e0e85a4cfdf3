# virtman — Interactive Virtual Machine Manager Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
File-backed command history for virtman.

One entry per line, oldest first. Entries are only ever appended: each
accepted command is written on its own as soon as it is accepted, so a crash
afterwards loses nothing. There is no de-duplication and no size bound.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from pathlib import Path

from .errors import HistoryPersistenceError

RECORD_SEPARATOR = "\n"


class FileHistoryStore(Sequence[str]):
    """Append-only history file implementing the HistoryStore protocol."""

    def __init__(self, path: Path):
        """Initialize store with the history file path.

        Args:
            path: Path to the history file (created by load() if missing)

        Note:
            Nothing is read until load() is called.
        """
        self.path = path
        self.entries: list[str] = []

    # ----------------------------------------------------------------
    # Sequence protocol (read-only view used by the line editor)
    # ----------------------------------------------------------------

    def __len__(self) -> int:
        return len(self.entries)

    def __getitem__(self, index):  # type: ignore[override]
        return self.entries[index]

    def __iter__(self) -> Iterator[str]:
        return iter(self.entries)

    # ----------------------------------------------------------------
    # Persistence
    # ----------------------------------------------------------------

    def load(self) -> list[str]:
        """Read the history file, creating it empty if missing.

        Blank lines are skipped and every entry is stripped. Bytes that are
        not valid UTF-8 are replaced with U+FFFD on load; the original bytes
        are not recoverable and the file is never rewritten.

        Raises:
            HistoryPersistenceError: the file exists but cannot be read,
                or cannot be created.
        """
        try:
            if not self.path.exists():
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self.path.touch()
                self.entries = []
                return list(self.entries)

            content = self.path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise HistoryPersistenceError(
                f"Cannot read history file {self.path}: {e}"
            ) from e

        self.entries = [
            line.strip()
            for line in content.strip().split(RECORD_SEPARATOR)
            if line.strip()
        ]
        return list(self.entries)

    def append(self, line: str) -> None:
        """Append one entry in memory and on disk.

        The in-memory entry is kept even when writing fails, so recall keeps
        working for the rest of the process.

        Raises:
            ValueError: line contains a line break (it would split into
                two entries on the next load)
            HistoryPersistenceError: the file could not be appended to
        """
        if "\n" in line or "\r" in line:
            raise ValueError("History entries cannot contain line breaks")

        self.entries.append(line)
        try:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line + RECORD_SEPARATOR)
        except OSError as e:
            raise HistoryPersistenceError(
                f"Cannot write history file {self.path}: {e}"
            ) from e
